import sqlalchemy as sa
from fakes import RecordingQuestionImporter, make_ctx

from Recipeweaver import models
from Recipeweaver.host.interfaces import ImportOutcome
from Recipeweaver.installers.questions import IMPORT_OPTIONS, QuestionsInstaller

QUESTIONS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<quiz>
  <question type="category"><category><text>$course$/Algebra</text></category></question>
  <question type="multichoice">
    <name><text>Linear equations</text></name>
    <questiontext format="html"><text>Solve x + 1 = 2</text></questiontext>
    <idnumber>ALG-1</idnumber>
    <answer fraction="100"><text>1</text></answer>
    <answer fraction="0"><text>2</text></answer>
  </question>
  <question type="truefalse">
    <name><text>Zero is even</text></name>
    <answer fraction="100"><text>true</text></answer>
    <answer fraction="0"><text>false</text></answer>
  </question>
</quiz>
"""

BAD_GRADES_XML = """<?xml version="1.0" encoding="UTF-8"?>
<quiz>
  <question type="multichoice">
    <name><text>Broken</text></name>
    <answer fraction="0"><text>a</text></answer>
  </question>
  <question type="essay"><name><text>Essay</text></name></question>
</quiz>
"""


def _write(tmp_path, files):
    base = tmp_path / "questions"
    base.mkdir()
    for name, text in files.items():
        (base / name).write_text(text)


async def _questions(db):
    return list((await db.execute(sa.select(models.Question).order_by(models.Question.id))).scalars())


async def test_check_lists_files(db, settings, tmp_path):
    _write(tmp_path, {"algebra.xml": QUESTIONS_XML})
    installer = QuestionsInstaller({"path": "/questions"})

    await installer.check(tmp_path, make_ctx(settings, db, tmp_path))

    assert installer.get_feedback() == {
        "questions": {"algebra.xml": {"success": ["Question file algebra.xml found"]}}
    }


async def test_execute_passes_import_options(db, settings, tmp_path):
    _write(tmp_path, {"a.xml": "<quiz/>", "b.xml": "<quiz/>"})
    importer = RecordingQuestionImporter({"b.xml": ImportOutcome(errors=["bad category"])})
    installer = QuestionsInstaller({"path": "/questions"})

    await installer.execute(tmp_path, make_ctx(settings, db, tmp_path, questions=importer))

    assert importer.calls == [
        ("a.xml", settings.question_course_id, IMPORT_OPTIONS),
        ("b.xml", settings.question_course_id, IMPORT_OPTIONS),
    ]
    fb = installer.get_feedback()["questions"]
    assert fb["a.xml"] == {"success": ["1 questions of a.xml imported"]}
    assert fb["b.xml"] == {"error": ["bad category"]}


async def test_xml_questions_are_stored(db, settings, tmp_path):
    _write(tmp_path, {"algebra.xml": QUESTIONS_XML})
    installer = QuestionsInstaller({"path": "/questions"})

    await installer.execute(tmp_path, make_ctx(settings, db, tmp_path))

    stored = await _questions(db)
    assert [(q.name, q.qtype, q.category) for q in stored] == [
        ("Linear equations", "multichoice", "$course$/Algebra"),
        ("Zero is even", "truefalse", "$course$/Algebra"),
    ]
    assert stored[0].idnumber == "ALG-1"
    assert installer.get_status() == 0


async def test_rejected_file_writes_nothing(db, settings, tmp_path):
    _write(tmp_path, {"broken.xml": BAD_GRADES_XML, "garbage.xml": "<quiz"})
    installer = QuestionsInstaller({"path": "/questions"})

    await installer.execute(tmp_path, make_ctx(settings, db, tmp_path))

    assert await _questions(db) == []
    fb = installer.get_feedback()["questions"]
    assert fb["broken.xml"]["error"] == ["question Broken has answer grades that do not match"]
    assert fb["garbage.xml"]["error"][0].startswith("garbage.xml is not a readable question file")
