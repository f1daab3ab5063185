import pytest

from Recipeweaver.json_path import MISSING, JsonPath


def test_parse_arrow_and_dot():
    assert JsonPath.parse("json->tree->nodes").tokens == ("json", "tree", "nodes")
    assert JsonPath.parse("data.course_node_id").tokens == ("data", "course_node_id")
    # arrows win, dots stay inside tokens
    assert JsonPath.parse("a.b->c").tokens == ("a.b", "c")
    with pytest.raises(ValueError):
        JsonPath.parse(" -> ")


def test_get_distinguishes_missing_from_null():
    tree = {"data": {"value": None, "items": [{"id": 4}]}}
    assert JsonPath.parse("data->value").get(tree) is None
    assert JsonPath.parse("data->other").get(tree) is MISSING
    assert JsonPath.parse("data->items->0->id").get(tree) == 4
    assert JsonPath.parse("data->items->3").get(tree) is MISSING
    assert JsonPath.parse("data->value->deeper").get(tree) is MISSING


def test_set_requires_parent():
    tree = {"data": {"items": [1, 2]}}
    assert JsonPath.parse("data->course").set(tree, 7)
    assert JsonPath.parse("data->items->1").set(tree, 9)
    assert tree == {"data": {"items": [1, 9], "course": 7}}
    assert not JsonPath.parse("nope->course").set(tree, 1)
    assert not JsonPath.parse("data->items->x").set(tree, 1)
    assert str(JsonPath.parse("data.items")) == "data->items"
