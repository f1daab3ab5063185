import orjson
from fakes import json_bytes, make_ctx

from Recipeweaver import models, repos
from Recipeweaver.context import RunMode
from Recipeweaver.installers.localdata import LocalDataInstaller

TRANSLATOR = {
    "changingcolumn": {
        "componentid": {},
        "courseid": {},
        "catscaleid": {},
        "json": {"nested": True, "keys": ["catquiz_courses", "catquiz_description"]},
    },
    "changingcourseids": "catquiz_courses",
    "duplicatecheck": ["name", "componentid"],
}
SECTION = {"path": "/localdata", "matcher": {"delimiter_name": "semicolon"}, "translator": TRANSLATOR}


def _nested() -> str:
    return orjson.dumps(
        {
            "catquiz_catscales": 3,
            "module": 1,
            "coursemodule": 1,
            "catquiz_courses_3_1": [5],
            "catquiz_description_3": "see https://old.example.org/course/view.php?id=5",
            "maxquestions": 10,
        }
    ).decode()


def _row(**overrides):
    row = {
        "id": 9,
        "componentid": 70,
        "component": "mod_adaptivequiz",
        "courseid": 5,
        "catscaleid": 3,
        "name": "Entry test",
        "json": _nested(),
    }
    row.update(overrides)
    return row


async def _platform(db):
    scale = models.CatScale(name="Mathematics")
    db.add(scale)
    await db.flush()
    module_id = await repos.get_or_create_module(db, "adaptivequiz")
    cm_id = await repos.insert_row(db, "course_modules", {"course": 100, "module": module_id, "instance": 200})
    return scale.id, module_id, cm_id


def _write(tmp_path, rows, csv_text="id;name\n3;Mathematics\n"):
    base = tmp_path / "localdata"
    base.mkdir(exist_ok=True)
    (base / "scales.csv").write_text(csv_text)
    (base / "cat_tests.json").write_bytes(json_bytes(rows))


def _ctx(settings, db, tmp_path, **kwargs):
    ctx = make_ctx(settings, db, tmp_path, **kwargs)
    ctx.registry.put("courses", 5, 100)
    ctx.registry.put("components", 70, 200)
    return ctx


async def test_row_is_translated_and_inserted(db, settings, tmp_path):
    scale_id, module_id, cm_id = await _platform(db)
    _write(tmp_path, [_row()])
    installer = LocalDataInstaller(SECTION)

    await installer.execute(tmp_path, _ctx(settings, db, tmp_path))

    rows = await repos.fetch_rows(db, "cat_tests", {})
    assert len(rows) == 1
    row = rows[0]
    assert (row["componentid"], row["courseid"], row["catscaleid"]) == (200, 100, scale_id)
    assert row["component"] == "mod_adaptivequiz"
    assert orjson.loads(row["json"]) == {
        "catquiz_catscales": scale_id,
        "module": module_id,
        "coursemodule": cm_id,
        f"catquiz_courses_{scale_id}_1": [100],
        f"catquiz_description_{scale_id}": "see https://new.example.org/course/view.php?id=100",
        "maxquestions": 10,
    }
    ids = installer.get_matchingids()
    assert ids.namespace("catscales") == {"3": scale_id}
    assert ids.namespace("testid") == {"9": row["id"]}
    assert installer.get_status() == 0


async def test_existing_row_is_skipped_with_warning(db, settings, tmp_path):
    await _platform(db)
    _write(tmp_path, [_row()])
    await LocalDataInstaller(SECTION).execute(tmp_path, _ctx(settings, db, tmp_path))

    again = LocalDataInstaller(SECTION)
    await again.execute(tmp_path, _ctx(settings, db, tmp_path))

    assert len(await repos.fetch_rows(db, "cat_tests", {})) == 1
    assert again.get_feedback()["localdata"]["cat_tests"]["warning"] == [
        "Row already present in cat_tests; skipped"
    ]


async def test_unresolved_course_aborts_remaining_rows(db, settings, tmp_path):
    await _platform(db)
    _write(tmp_path, [_row(courseid=99), _row(id=10, courseid=99, name="Other")])
    installer = LocalDataInstaller(SECTION)

    await installer.execute(tmp_path, _ctx(settings, db, tmp_path))

    assert await repos.fetch_rows(db, "cat_tests", {}) == []
    assert installer.get_feedback()["localdata"]["cat_tests"]["error"] == [
        "Course 99 of cat_tests was not installed"
    ]


async def test_unknown_nested_scale_blocks_the_row(db, settings, tmp_path):
    await _platform(db)
    nested = orjson.loads(_nested())
    nested["catquiz_description_42"] = "x"
    _write(tmp_path, [_row(json=orjson.dumps(nested).decode())])
    installer = LocalDataInstaller(SECTION)

    await installer.execute(tmp_path, _ctx(settings, db, tmp_path))

    assert await repos.fetch_rows(db, "cat_tests", {}) == []
    errors = installer.get_feedback()["localdata"]["cat_tests"]["error"]
    assert "Scale 42 referenced in nested data was not matched" in errors


async def test_missing_table_is_an_error(db, settings, tmp_path):
    base = tmp_path / "localdata"
    base.mkdir()
    (base / "no_such_table.json").write_bytes(json_bytes([{"id": 1}]))
    installer = LocalDataInstaller(SECTION)

    await installer.execute(tmp_path, _ctx(settings, db, tmp_path))

    assert installer.has_errors("no_such_table")


async def test_csv_without_required_columns(db, settings, tmp_path):
    _write(tmp_path, [], csv_text="key;label\n3;Mathematics\n")
    installer = LocalDataInstaller(SECTION)

    await installer.execute(tmp_path, _ctx(settings, db, tmp_path))

    assert installer.get_feedback()["localdata"]["scales"]["error"] == [
        "CSV file scales.csv needs the columns id and name"
    ]


async def test_check_preloads_identity_ids(db, settings, tmp_path):
    scale_id, _, _ = await _platform(db)
    _write(tmp_path, [_row()])
    installer = LocalDataInstaller(SECTION)

    await installer.check(tmp_path, _ctx(settings, db, tmp_path, mode=RunMode.CHECK))

    ids = installer.get_matchingids()
    assert ids.namespace("testid") == {"9": 9}
    assert ids.namespace("componentid") == {"70": 70}
    assert ids.namespace("testid_courseid") == {"5": 5}
    assert ids.namespace("catscales") == {"3": scale_id}
    assert await repos.fetch_rows(db, "cat_tests", {}) == []
    # scales are matched before the data files that use them
    assert list(installer.get_feedback()["localdata"]) == ["scales", "cat_tests"]


async def test_string_links_resolve_once_per_link(db, settings, tmp_path):
    ctx = make_ctx(settings, db, tmp_path)
    for old, new in (("1", 2), ("2", 3), ("3", 13)):
        ctx.registry.put("courses", old, new)
    installer = LocalDataInstaller({})
    text = (
        "a https://old.example.org/course/view.php?id=1 "
        "b course/view.php?id=2 "
        "c https://other.example.org/course/view.php?id=3 "
        "d https://old.example.org/course/view.php?id=4"
    )

    out = installer.translate_string_links(text, ctx)

    assert out == (
        "a https://new.example.org/course/view.php?id=2 "
        "b course/view.php?id=3 "
        "c https://new.example.org/course/view.php?id=13 "
        "d https://old.example.org/course/view.php?id=4"
    )
    assert installer.get_feedback()["localdata"]["local_data"]["error"] == [
        "Course 4 linked in local data was not installed"
    ]
    assert installer.uploaddata is False


async def test_row_with_unresolved_link_is_not_inserted(db, settings, tmp_path):
    await _platform(db)
    nested = orjson.loads(_nested())
    nested["catquiz_description_3"] = "see https://old.example.org/course/view.php?id=999"
    _write(tmp_path, [_row(json=orjson.dumps(nested).decode())])
    installer = LocalDataInstaller(SECTION)

    await installer.execute(tmp_path, _ctx(settings, db, tmp_path))

    assert await repos.fetch_rows(db, "cat_tests", {}) == []
    node = installer.get_feedback()["localdata"]["cat_tests"]
    assert "Course 999 linked in local data was not installed" in node["error"]
    assert "success" not in node


async def test_course_matching_drops_unknown_courses(db, settings, tmp_path):
    ctx = make_ctx(settings, db, tmp_path)
    ctx.registry.put("courses", 5, 100)
    installer = LocalDataInstaller({})

    assert installer.course_matching([5, 6, 7], ctx) == [100]
    assert installer.uploaddata is False
    assert installer.get_feedback()["localdata"]["local_data"]["error"] == [
        "Course 6 referenced in local data was not installed"
    ]


async def test_rebuild_finds_inserted_rows(db, settings, tmp_path):
    scale_id, _, _ = await _platform(db)
    _write(tmp_path, [_row()])
    first = LocalDataInstaller(SECTION)
    await first.execute(tmp_path, _ctx(settings, db, tmp_path))

    again = LocalDataInstaller(SECTION)
    await again.rebuild_matchingids(tmp_path, _ctx(settings, db, tmp_path))

    assert again.get_matchingids().namespace("testid") == first.get_matchingids().namespace("testid")
    assert again.get_matchingids().namespace("catscales") == {"3": scale_id}


async def test_duplicatecheck_matches_on_every_field(db, settings, tmp_path):
    await repos.create_course(db, category=0, shortname="algebra", fullname="Algebra")
    ctx = make_ctx(settings, db, tmp_path)
    installer = LocalDataInstaller({"translator": {"duplicatecheck": ["shortname", "fullname"]}})

    assert await installer.duplicatecheck("courses", {"shortname": "algebra", "fullname": "Algebra"}, ctx)
    assert not await installer.duplicatecheck("courses", {"shortname": "algebra", "fullname": "Other"}, ctx)
    assert not await installer.duplicatecheck("courses", {"shortname": "geometry", "fullname": "Algebra"}, ctx)
