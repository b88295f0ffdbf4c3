from featuremap.modindex import (
    GoFileRef,
    GoImportIndex,
    ImportResolver,
    candidate_paths,
    join_relative,
    probe_known_file,
)


def test_candidate_order():
    assert candidate_paths("src/a") == [
        "src/a",
        "src/a.ts",
        "src/a.tsx",
        "src/a.js",
        "src/a.jsx",
        "src/a/index.ts",
        "src/a/index.tsx",
        "src/a/index.js",
        "src/a/index.jsx",
    ]


def test_compiled_output_specifier_maps_back_to_source():
    cands = candidate_paths("src/a.js", "./a.js")
    assert cands[-2:] == ["src/a.ts", "src/a.tsx"]
    assert "src/a.ts" not in candidate_paths("src/a.js", "./a.js.map")


def test_file_beats_directory_index():
    known = {"src/a.ts", "src/a/index.ts"}
    assert probe_known_file("src/a", known) == "src/a.ts"
    assert probe_known_file("src/b", known) is None


def test_join_relative():
    assert join_relative("src/app", "./util") == "src/app/util"
    assert join_relative("src/app", "../lib/x") == "src/lib/x"
    assert join_relative("", "./x") == "x"
    assert join_relative("src", "../../x") is None


def test_go_index_first_file_per_package_wins():
    index = GoImportIndex.build([
        GoFileRef("svc/internal/db/a.go", "example.com/svc", "svc"),
        GoFileRef("svc/internal/db/b.go", "example.com/svc", "svc"),
        GoFileRef("svc/main.go", "example.com/svc", "svc"),
        GoFileRef("loose/x.go", None),
    ])
    assert index.by_import_path == {
        "example.com/svc/internal/db": "svc/internal/db/a.go",
        "example.com/svc": "svc/main.go",
    }
    assert index.resolve("example.com/svc/internal/db") == "svc/internal/db/a.go"
    assert index.resolve("example.com/svc/internal/cache") is None


def test_go_index_module_at_repo_root():
    index = GoImportIndex.build([GoFileRef("pkg/util/u.go", "github.com/acme/tool")])
    assert index.resolve("github.com/acme/tool/pkg/util") == "pkg/util/u.go"


def test_resolver_relative_and_index():
    resolver = ImportResolver(["src/app/main.ts", "src/app/util.ts", "src/lib/index.ts"])
    assert resolver.resolve_import("./util", "src/app/main.ts") == "src/app/util.ts"
    assert resolver.resolve_import("../lib", "src/app/main.ts") == "src/lib/index.ts"
    assert resolver.resolve_import("./missing", "src/app/main.ts") is None
    assert resolver.resolve_import("../../../escape", "src/app/main.ts") is None


def test_resolver_passes_through_known_paths():
    resolver = ImportResolver(["src/a.ts", "src/b.ts"])
    assert resolver.resolve_import("src/b.ts", "src/a.ts") == "src/b.ts"


def test_bare_specifier_without_aliases_is_unresolved():
    resolver = ImportResolver(["src/a.ts"])
    assert resolver.resolve_import("react", "src/a.ts") is None
    assert resolver.resolve_import("", "src/a.ts") is None


def test_resolver_dispatches_go_files_to_go_index():
    index = GoImportIndex.build([GoFileRef("internal/db/db.go", "example.com/app")])
    resolver = ImportResolver(["cmd/main.go", "internal/db/db.go"], go_index=index)
    assert resolver.resolve_import("example.com/app/internal/db", "cmd/main.go") == "internal/db/db.go"
    assert resolver.resolve_import("./internal/db", "cmd/main.go") is None
