import sqlalchemy as sa
from fakes import RecordingImporters, make_ctx

from Recipeweaver import models
from Recipeweaver.installers.itemparams import ItemParamsInstaller

SECTION = {
    "path": "/itemparams",
    "matcher": {"name": "item_params", "delimiter_name": "semicolon", "dateparseformat": "%d.%m.%Y"},
}


def _write(tmp_path, text, name="params.csv"):
    base = tmp_path / "itemparams"
    base.mkdir(exist_ok=True)
    (base / name).write_text(text)


async def _question(db, idnumber="Q1"):
    question = models.Question(courseid=1, name=idnumber, qtype="multichoice", idnumber=idnumber)
    db.add(question)
    await db.flush()
    return question.id


async def test_import_with_bundled_strategy(db, settings, tmp_path):
    question_id = await _question(db)
    _write(tmp_path, "label;model;difficulty;timecreated\nQ1;raschbirnbauma;0,5;01.02.2024\n")
    installer = ItemParamsInstaller(SECTION)

    await installer.execute(tmp_path, make_ctx(settings, db, tmp_path))

    [param] = (await db.execute(sa.select(models.ItemParam))).scalars().all()
    assert (param.componentid, param.model, param.difficulty) == (question_id, "raschbirnbauma", 0.5)
    assert param.timecreated.year == 2024
    assert installer.get_feedback()["itemparams"]["params.csv"] == {
        "success": ["Item parameters imported with item_params"]
    }


async def test_bad_rows_are_reported(db, settings, tmp_path):
    await _question(db)
    _write(tmp_path, "label;model;timecreated\nQ9;rasch;\nQ1;rasch;2024-02-01\n")
    installer = ItemParamsInstaller(SECTION)

    await installer.execute(tmp_path, make_ctx(settings, db, tmp_path))

    assert installer.get_feedback()["itemparams"]["params.csv"]["error"] == [
        "line 2: no matching question or model",
        "line 3: timecreated does not match %d.%m.%Y",
    ]


async def test_no_questions_blocks_import(db, settings, tmp_path):
    _write(tmp_path, "label;model\nQ1;rasch\n")
    importers = RecordingImporters()
    installer = ItemParamsInstaller(SECTION)

    await installer.execute(tmp_path, make_ctx(settings, db, tmp_path, importers=importers))

    assert importers.calls == []
    assert installer.get_feedback()["itemparams"]["params.csv"]["error"] == [
        "No questions found on the platform"
    ]


async def test_options_reach_the_strategy(db, settings, tmp_path):
    await _question(db)
    _write(tmp_path, "label,model\nQ1,rasch\n")
    importers = RecordingImporters()
    installer = ItemParamsInstaller({"path": "/itemparams", "matcher": {"name": "item_params"}})

    await installer.execute(tmp_path, make_ctx(settings, db, tmp_path, importers=importers))

    assert importers.calls == [
        (
            "item_params",
            {"delimiter_name": "semicolon", "encoding": None, "dateparseformat": None},
            "label,model\nQ1,rasch\n",
        )
    ]


async def test_unavailable_importer(db, settings, tmp_path):
    await _question(db)
    _write(tmp_path, "label;model\nQ1;rasch\n")
    section = {"path": "/itemparams", "matcher": {"name": "irt_remote"}}

    checker = ItemParamsInstaller(section)
    await checker.check(tmp_path, make_ctx(settings, db, tmp_path))
    assert checker.get_feedback()["itemparams"]["params.csv"]["warning"] == [
        "Importer irt_remote is not available"
    ]

    installer = ItemParamsInstaller(section)
    await installer.execute(tmp_path, make_ctx(settings, db, tmp_path))
    assert installer.get_feedback()["itemparams"]["params.csv"]["error"] == [
        "Importer irt_remote is not available"
    ]
