from fakes import json_bytes, make_ctx

from Recipeweaver import repos
from Recipeweaver.context import RunMode
from Recipeweaver.installers.customfields import CustomFieldsInstaller

GROUP = {
    "name": "Adaptive settings",
    "component": "core_course",
    "area": "course",
    "fields": [
        {"shortname": "difficulty", "name": "Difficulty", "type": "select"},
        {"shortname": "audience", "name": "Audience"},
    ],
}


async def test_execute_creates_category_and_fields(db, settings, tmp_path):
    installer = CustomFieldsInstaller([GROUP])

    await installer.execute(tmp_path, make_ctx(settings, db, tmp_path))

    category = await repos.get_customfield_category(db, "core_course", "course", "Adaptive settings")
    assert category is not None
    difficulty = await repos.get_customfield(db, "difficulty")
    assert difficulty.categoryid == category.id
    assert difficulty.type == "select"
    assert installer.get_matchingids().namespace("customfields") == {
        "difficulty": difficulty.id,
        "audience": (await repos.get_customfield(db, "audience")).id,
    }
    assert installer.get_status() == 0


async def test_existing_field_is_not_duplicated(db, settings, tmp_path):
    await CustomFieldsInstaller([GROUP]).execute(tmp_path, make_ctx(settings, db, tmp_path))

    again = CustomFieldsInstaller({"groups": [GROUP]})
    await again.execute(tmp_path, make_ctx(settings, db, tmp_path))

    assert again.get_matchingids().namespace("customfields") == {}
    assert again.get_feedback()["customfields"]["Adaptive settings"]["success"] == [
        "Custom field difficulty already exists",
        "Custom field audience already exists",
    ]


async def test_groups_from_files_and_nameless_groups(db, settings, tmp_path):
    base = tmp_path / "fields"
    base.mkdir()
    (base / "groups.json").write_bytes(json_bytes([GROUP, {"fields": []}]))
    installer = CustomFieldsInstaller({"path": "/fields"})

    await installer.check(tmp_path, make_ctx(settings, db, tmp_path, mode=RunMode.CHECK))

    fb = installer.get_feedback()["customfields"]
    assert fb["customfields"]["error"] == ["Custom field group without a name was skipped"]
    assert fb["Adaptive settings"]["success"] == [
        "New custom field Difficulty found",
        "New custom field Audience found",
    ]
    assert await repos.get_customfield(db, "difficulty") is None
