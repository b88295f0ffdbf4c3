import json
import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from featuremap.aliases import (
    AliasConfigError,
    AliasEntry,
    AliasResolver,
    AliasTableCache,
    ConfigLocator,
    match_alias,
    split_pattern,
)


def _tsconfig(paths: dict, *, extends=None, base_url: str | None = ".") -> str:
    co: dict = {"paths": paths}
    if base_url is not None:
        co["baseUrl"] = base_url
    obj: dict = {"compilerOptions": co}
    if extends is not None:
        obj["extends"] = extends
    return json.dumps(obj)


def test_wildcard_alias_probes_index_file(write_tree):
    root = write_tree({
        "tsconfig.json": _tsconfig({"@app/*": ["src/app/*"]}),
        "src/app/foo/index.ts": "export const foo = 1;\n",
        "src/main.ts": "import { foo } from '@app/foo';\n",
    })
    resolver = AliasResolver(str(root), ["src/app/foo/index.ts", "src/main.ts"])

    assert resolver.is_alias_import("@app/foo", "src/main.ts")
    assert resolver.resolve_alias_import("@app/foo", "src/main.ts") == "src/app/foo/index.ts"


def test_wildcard_requires_non_empty_middle():
    prefix, suffix, has_star = split_pattern("@app/*")
    entry = AliasEntry("@app/*", prefix, suffix, has_star, ("/abs/src/app/*",), 0)
    assert match_alias(entry, "@app/x") == "x"
    assert match_alias(entry, "@app/") is None
    assert match_alias(entry, "@other/x") is None


def test_pattern_with_two_stars_is_exact_only():
    prefix, suffix, has_star = split_pattern("a/*/b/*")
    assert has_star is False
    assert prefix == "a/*/b/*"


def test_exact_pattern(write_tree):
    root = write_tree({
        "tsconfig.json": _tsconfig({"config": ["src/config/index.ts"]}),
        "src/config/index.ts": "",
    })
    resolver = AliasResolver(str(root), ["src/config/index.ts", "src/a.ts"])
    assert resolver.resolve_alias_import("config", "src/a.ts") == "src/config/index.ts"
    assert resolver.resolve_alias_import("config/extra", "src/a.ts") is None


def test_more_specific_pattern_wins(write_tree):
    root = write_tree({
        "tsconfig.json": _tsconfig({
            "@/*": ["src/*"],
            "@/components/*": ["src/ui/*"],
        }),
    })
    known = ["src/components/button.ts", "src/ui/button.ts", "src/a.ts"]
    resolver = AliasResolver(str(root), known)
    assert resolver.resolve_alias_import("@/components/button", "src/a.ts") == "src/ui/button.ts"
    assert resolver.resolve_alias_import("@/a", "src/a.ts") == "src/a.ts"


def test_later_targets_are_fallbacks(write_tree):
    root = write_tree({
        "tsconfig.json": _tsconfig({"@shared/*": ["missing/*", "libs/shared/*"]}),
    })
    resolver = AliasResolver(str(root), ["libs/shared/date.ts", "a.ts"])
    assert resolver.resolve_alias_import("@shared/date", "a.ts") == "libs/shared/date.ts"


def test_js_specifier_resolves_to_ts_source(write_tree):
    root = write_tree({"tsconfig.json": _tsconfig({"@lib/*": ["lib/*"]})})
    resolver = AliasResolver(str(root), ["lib/util.ts", "a.ts"])
    assert resolver.resolve_alias_import("@lib/util.js", "a.ts") == "lib/util.ts"


def test_unresolvable_alias_is_still_an_alias(write_tree):
    root = write_tree({"tsconfig.json": _tsconfig({"@app/*": ["src/app/*"]})})
    resolver = AliasResolver(str(root), ["a.ts"])
    assert resolver.is_alias_import("@app/nope", "a.ts")
    assert resolver.resolve_alias_import("@app/nope", "a.ts") is None
    assert not resolver.is_alias_import("react", "a.ts")
    assert not resolver.is_alias_import("./local", "a.ts")


def test_child_overrides_parent_pattern(write_tree):
    root = write_tree({
        "tsconfig.base.json": _tsconfig({"@lib/*": ["base/*"], "@base/*": ["base/*"]}),
        "tsconfig.json": _tsconfig({"@lib/*": ["child/*"]}, extends="./tsconfig.base"),
    })
    resolver = AliasResolver(str(root), ["base/x.ts", "child/x.ts", "a.ts"])
    assert resolver.resolve_alias_import("@lib/x", "a.ts") == "child/x.ts"
    # inherited pattern still works
    assert resolver.resolve_alias_import("@base/x", "a.ts") == "base/x.ts"


def test_extends_list_later_entry_wins(write_tree):
    root = write_tree({
        "one.json": _tsconfig({"@x/*": ["one/*"]}),
        "two.json": _tsconfig({"@x/*": ["two/*"]}),
        "tsconfig.json": json.dumps({"extends": ["./one.json", "./two.json"]}),
    })
    resolver = AliasResolver(str(root), ["one/a.ts", "two/a.ts", "b.ts"])
    assert resolver.resolve_alias_import("@x/a", "b.ts") == "two/a.ts"


def test_parent_base_url_is_relative_to_parent_file(write_tree):
    root = write_tree({
        "configs/base.json": _tsconfig({"@core/*": ["core/*"]}, base_url=".."),
        "tsconfig.json": json.dumps({"extends": "./configs/base.json"}),
    })
    resolver = AliasResolver(str(root), ["core/a.ts", "b.ts"])
    assert resolver.resolve_alias_import("@core/a", "b.ts") == "core/a.ts"


def test_extends_cycle_terminates(write_tree):
    root = write_tree({
        "tsconfig.json": _tsconfig({"@a/*": ["a/*"]}, extends="./base.json"),
        "base.json": _tsconfig({"@b/*": ["b/*"]}, extends="./tsconfig.json"),
    })
    tables = AliasTableCache()
    entries = tables.load_alias_entries(str(root / "tsconfig.json"))
    assert [e.pattern for e in entries] == ["@a/*", "@b/*"]


CYCLE_TREE = {
    "tsconfig.json": _tsconfig({"@a/*": ["a/*"]}, extends="./b/tsconfig.json"),
    "b/tsconfig.json": _tsconfig({"@b/*": ["*"]}, extends="../tsconfig.json"),
}


def _patterns(tables: AliasTableCache, path) -> list[str]:
    return [e.pattern for e in tables.load_alias_entries(str(path))]


@pytest.mark.parametrize("warm_first", ["tsconfig.json", "b/tsconfig.json"])
def test_extends_cycle_tables_do_not_depend_on_load_order(write_tree, warm_first):
    root = write_tree(CYCLE_TREE)
    expected = {
        "tsconfig.json": _patterns(AliasTableCache(), root / "tsconfig.json"),
        "b/tsconfig.json": _patterns(AliasTableCache(), root / "b/tsconfig.json"),
    }
    assert expected == {"tsconfig.json": ["@a/*", "@b/*"], "b/tsconfig.json": ["@b/*", "@a/*"]}

    tables = AliasTableCache()
    _patterns(tables, root / warm_first)
    assert {rel: _patterns(tables, root / rel) for rel in expected} == expected


def test_extends_cycle_resolution_from_both_sides(write_tree):
    root = write_tree(CYCLE_TREE)
    known = ["a/x.ts", "b/y.ts", "b/main.ts", "main.ts"]
    resolver = AliasResolver(str(root), known)
    # the root config is loaded first, then the one under b/
    assert resolver.resolve_alias_import("@b/y", "main.ts") == "b/y.ts"
    assert resolver.resolve_alias_import("@a/x", "b/main.ts") == "a/x.ts"


def test_self_extends_terminates(write_tree):
    root = write_tree({"tsconfig.json": _tsconfig({"@a/*": ["a/*"]}, extends="./tsconfig.json")})
    entries = AliasTableCache().load_alias_entries(str(root / "tsconfig.json"))
    assert [e.pattern for e in entries] == ["@a/*"]


def test_package_extends_is_ignored(write_tree):
    root = write_tree({"tsconfig.json": _tsconfig({"@a/*": ["a/*"]}, extends="@tsconfig/node18/tsconfig.json")})
    entries = AliasTableCache().load_alias_entries(str(root / "tsconfig.json"))
    assert [e.pattern for e in entries] == ["@a/*"]


def test_nearest_config_wins(write_tree):
    root = write_tree({
        "tsconfig.json": _tsconfig({"@/*": ["src/*"]}),
        "packages/web/tsconfig.json": _tsconfig({"@/*": ["app/*"]}),
    })
    known = ["src/util.ts", "packages/web/app/util.ts", "packages/web/app/page.ts", "src/main.ts"]
    resolver = AliasResolver(str(root), known)
    assert resolver.resolve_alias_import("@/util", "packages/web/app/page.ts") == "packages/web/app/util.ts"
    assert resolver.resolve_alias_import("@/util", "src/main.ts") == "src/util.ts"


def test_locator_probes_each_directory_once(write_tree):
    root = write_tree({
        "pkg/tsconfig.json": "{}",
        "pkg/a/b/c.ts": "",
        "pkg/a/d.ts": "",
    })
    locator = ConfigLocator()
    first = locator.find_nearest_config(str(root / "pkg/a/b/c.ts"), str(root))
    assert first == str(root / "pkg/tsconfig.json")
    assert len(locator.probed_dirs) == 3

    # every directory walked above is answered from the cache
    second = locator.find_nearest_config(str(root / "pkg/a/d.ts"), str(root))
    assert second == first
    assert len(locator.probed_dirs) == 3

    again = locator.find_nearest_config(str(root / "pkg/a/b/c.ts"), str(root))
    assert again == first
    assert len(locator.probed_dirs) == 3


def test_locator_probes_each_directory_once_across_threads(write_tree):
    files = {f"pkg/m{i}/f{j}.ts": "" for i in range(8) for j in range(4)}
    root = write_tree({"pkg/tsconfig.json": "{}", **files})
    locator = ConfigLocator()

    with ThreadPoolExecutor(max_workers=8) as pool:
        answers = list(pool.map(lambda rel: locator.find_nearest_config(str(root / rel), str(root)), files))

    assert set(answers) == {str(root / "pkg/tsconfig.json")}
    assert len(locator.probed_dirs) == len(set(locator.probed_dirs)) == 9


def test_locator_stops_at_root_boundary(write_tree):
    root = write_tree({"x/y/z.ts": ""})
    locator = ConfigLocator()
    assert locator.find_nearest_config(str(root / "x/y/z.ts"), str(root)) is None
    probed = list(locator.probed_dirs)
    assert probed[-1] == str(root)
    assert locator.find_nearest_config(str(root / "x/y/z.ts"), str(root)) is None
    assert locator.probed_dirs == probed


def test_jsconfig_is_used_when_no_tsconfig(write_tree):
    root = write_tree({"jsconfig.json": _tsconfig({"~/*": ["src/*"]})})
    resolver = AliasResolver(str(root), ["src/a.js", "b.js"])
    assert resolver.resolve_alias_import("~/a", "b.js") == "src/a.js"


def test_invalid_config_warns_once(write_tree, caplog):
    root = write_tree({"tsconfig.json": "{ not json"})
    resolver = AliasResolver(str(root), ["a.ts", "b/c.ts"])

    with caplog.at_level(logging.WARNING, logger="featuremap.aliases"):
        assert resolver.resolve_alias_import("@x/y", "a.ts") is None
        assert resolver.resolve_alias_import("@x/y", "b/c.ts") is None
        assert resolver.is_alias_import("@x/y", "a.ts") is False

    warnings = [r for r in caplog.records if r.name == "featuremap.aliases" and r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert resolver.tables.invalid_configs == {str(root / "tsconfig.json")}


def test_invalid_config_raises_in_strict_mode(write_tree):
    root = write_tree({"tsconfig.json": "[1, 2"})
    resolver = AliasResolver(str(root), ["a.ts"], strict=True)
    with pytest.raises(AliasConfigError):
        resolver.resolve_alias_import("@x/y", "a.ts")


def test_non_object_config_is_invalid(write_tree):
    root = write_tree({"tsconfig.json": "[]"})
    tables = AliasTableCache()
    assert tables.load_alias_entries(str(root / "tsconfig.json")) == []
    assert tables.invalid_configs == {str(root / "tsconfig.json")}
