import base64
import sys

import httpx
import pytest
from fakes import make_backup

from Recipeweaver import repos
from Recipeweaver.errors import BackupError, PackageSourceError
from Recipeweaver.host.backup import extract_backup, original_activity_ids, read_backup_info
from Recipeweaver.host.github import GithubPackageSource, contents_api_url, git_remote_url
from Recipeweaver.host.importers import StrategyImporterRegistry, load_strategy
from Recipeweaver.host.plugins import DatabasePluginManager, parse_version_file, split_component
from Recipeweaver.host.process import SubprocessRunner

ARCHIVE = "https://github.com/acme/moodle-local_catquiz/archive/refs/heads/main.zip"


def test_backup_metadata_and_activity_order(tmp_path):
    archive = make_backup(
        tmp_path / "a.mbz",
        "algebra",
        11,
        [("adaptivequiz", 20, 7), ("quiz", 21, 44), ("adaptivequiz", 5, 8)],
    )
    backup_dir = extract_backup(archive, tmp_path / "out")

    info = read_backup_info(backup_dir)
    assert (info.shortname, info.original_course_id) == ("algebra", "11")
    assert [a.modulename for a in info.activities] == ["adaptivequiz", "quiz", "adaptivequiz"]
    # metadata order wins over the folder suffix
    assert original_activity_ids(backup_dir, "adaptivequiz", info) == ["7", "8"]
    # without metadata folders sort by module id
    assert original_activity_ids(backup_dir, "adaptivequiz") == ["8", "7"]


def test_extract_rejects_non_archives(tmp_path):
    junk = tmp_path / "junk.mbz"
    junk.write_bytes(b"junk")

    with pytest.raises(BackupError):
        extract_backup(junk, tmp_path / "out")


def test_version_file_parsing():
    content = "<?php\n$plugin->component = 'local_catquiz';\n$plugin->version  = 2024061700;\n"

    assert parse_version_file(content) == ("local_catquiz", 2024061700)
    assert parse_version_file("<?php\n") == (None, None)
    assert split_component("local_catquiz") == ("local", "catquiz")


def test_github_urls():
    assert git_remote_url(ARCHIVE) == "https://github.com/acme/moodle-local_catquiz.git"
    assert (
        contents_api_url(ARCHIVE, "https://api.github.com/")
        == "https://api.github.com/repos/acme/moodle-local_catquiz/contents/version.php?ref=main"
    )
    tagged = "https://github.com/acme/repo/archive/refs/tags/v1.2.zip"
    assert contents_api_url(tagged, "https://api.github.com").endswith("?ref=refs/tags/v1.2")
    with pytest.raises(PackageSourceError):
        contents_api_url("https://github.com/", "https://api.github.com")


async def test_github_source_reads_version_and_downloads(settings, tmp_path):
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        if request.url.host == "api.github.com":
            encoded = base64.b64encode(b"$plugin->version = 1;").decode()
            return httpx.Response(200, json={"content": encoded})
        if request.url.path.endswith("main.zip"):
            return httpx.Response(200, content=b"PK-bytes")
        return httpx.Response(404)

    source = GithubPackageSource(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    try:
        assert await source.fetch_version_file(ARCHIVE) == "$plugin->version = 1;"
        target = await source.download(ARCHIVE, tmp_path / "dl" / "p.zip")
        assert target.read_bytes() == b"PK-bytes"
        with pytest.raises(PackageSourceError):
            await source.download("https://github.com/acme/x/archive/other.tar", tmp_path / "x")
    finally:
        await source.close()
    assert seen[0].startswith("https://api.github.com/repos/acme/moodle-local_catquiz/contents/")


async def test_plugin_manager_reads_registered_versions(db, settings, tmp_path):
    await repos.set_config_value(db, "local_catquiz", "version", "2024061700")
    manager = DatabasePluginManager(db, settings)

    assert await manager.installed_version("local_catquiz") == 2024061700
    assert await manager.installed_version("local_other") is None
    assert manager.plugin_type_root("qtype") == tmp_path / "platform" / "question" / "type"
    assert manager.plugin_type_root("nosuchtype") is None


async def test_importer_registry_skips_unresolvable_strategies(db):
    registry = StrategyImporterRegistry(db, {"broken": "no_such_module_xyz:run", "bad": "nocolon"})

    assert registry.has("item_params")
    assert not registry.has("broken")
    assert not registry.has("bad")
    with pytest.raises(ValueError):
        load_strategy("nocolon")


def test_subprocess_runner(tmp_path):
    runner = SubprocessRunner()

    assert runner.available(sys.executable)
    assert not runner.available("surely-not-installed-recipeweaver")
    result = runner.run([sys.executable, "-c", "print('ok')"], cwd=tmp_path)
    assert (result.returncode, result.output) == (0, "ok")
    assert runner.run(["surely-not-installed-recipeweaver"]).returncode == 127
