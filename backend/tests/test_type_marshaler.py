import pytest

from codejudge.core.exceptions import UnsupportedTypeError, ValidationError
from codejudge.services.type_marshaler import (
    TypeMarshaler,
    is_known_type,
    is_supported_input_type,
    is_supported_return_type,
    normalize_type,
)

marshaler = TypeMarshaler()


def test_primitive_literals():
    assert marshaler.to_source_literal(5, "int") == "5"
    assert marshaler.to_source_literal(2.5, "double") == "2.5"
    assert marshaler.to_source_literal(True, "bool") == "true"
    assert marshaler.to_source_literal("x", "char") == "'x'"


def test_string_literal_is_escaped():
    assert marshaler.to_source_literal('a"b\n', "string") == r'"a\"b\n"'


def test_vector_literal_is_brace_initialised():
    assert marshaler.to_source_literal([1, 2, 3], "vector<int>") == "{1,2,3}"
    assert marshaler.to_source_literal(["a", "b"], "vector< string >") == '{"a","b"}'


def test_pointer_literal_maps_nulls_to_sentinel():
    assert marshaler.to_source_literal([1, None, "null", 2], "TreeNode*") == "{1,-1,-1,2}"


def test_value_of_wrong_shape_is_rejected():
    with pytest.raises(ValidationError):
        marshaler.to_source_literal("abc", "int")
    with pytest.raises(ValidationError):
        marshaler.to_source_literal(5, "vector<int>")


def test_unknown_tags_raise():
    with pytest.raises(UnsupportedTypeError):
        marshaler.to_source_literal(1, "map<int,int>")
    with pytest.raises(UnsupportedTypeError):
        marshaler.to_source_literal([[1]], "vector<vector<int>>")
    with pytest.raises(UnsupportedTypeError):
        marshaler.emit_result("result", "float")


def test_type_support_tables():
    assert normalize_type("TreeNode *") == "TreeNode*"
    assert normalize_type("map<string,int>") == "map<string, int>"
    assert is_supported_input_type("vector<bool>")
    assert not is_supported_input_type("set<int>")
    assert is_supported_return_type("set<int>")
    assert is_known_type("vector<vector<int>>")
    assert not is_supported_return_type("vector<vector<int>>")
    assert not is_known_type(42)


def test_declare_tree_uses_breadth_first_slots():
    lines = marshaler.declare("root", [1, None, 2], "TreeNode*")
    assert lines[0] == "TreeNode* root = nullptr;"
    assert "vector<int> root_values = {1,-1,2};" in lines
    assert "    queue<TreeNode**> slots;" in lines


def test_declare_list_skips_sentinels():
    lines = marshaler.declare("head", [1, 2], "ListNode*")
    assert lines[0] == "ListNode* head = nullptr;"
    assert "        if (v == -1) continue;" in lines


def test_emit_result_for_pointers():
    assert marshaler.emit_result("result", "ListNode*") == ["cout << __judge::list_values(result) << endl;"]
    assert marshaler.emit_result("result", "TreeNode*") == ["cout << __judge::tree_level(result) << endl;"]
    legacy = TypeMarshaler(tree_output_order="preorder")
    assert legacy.emit_result("result", "TreeNode*") == ["cout << __judge::tree_preorder(result) << endl;"]


def test_from_output_token():
    assert marshaler.from_output_token("1", "bool") is True
    assert marshaler.from_output_token("false", "bool") is False
    assert marshaler.from_output_token("", "vector<int>") == []
    assert marshaler.from_output_token("1,2,3", "vector<int>") == [1, 2, 3]
    assert marshaler.from_output_token("a\\,b,c", "vector<string>") == ["a,b", "c"]
    assert marshaler.from_output_token("1,null,2", "TreeNode*") == [1, None, 2]


@pytest.mark.parametrize("value,type_tag", [
    (42, "int"),
    (2.5, "double"),
    (True, "bool"),
    ("hello, world: x\n", "string"),
    ("q", "char"),
    ([], "vector<int>"),
    (["a,b", "c:d"], "vector<string>"),
    ([1, 2, 3], "ListNode*"),
    ([1, None, 2, 3], "TreeNode*"),
    ({"a": 1, "b": 2}, "map<string, int>"),
])
def test_printed_token_reads_back_to_the_value(value, type_tag):
    token = marshaler.to_output_token(value, type_tag)
    assert "\n" not in token
    assert marshaler.from_output_token(token, type_tag) == value


def test_empty_list_prints_empty_token():
    assert marshaler.to_output_token([], "ListNode*") == ""


def test_preorder_tree_output_does_not_round_trip():
    # Legacy order: the printed shape loses the gaps of the level-order input.
    legacy = TypeMarshaler(tree_output_order="preorder")
    token = legacy.to_output_token([1, None, 2, 3], "TreeNode*")
    assert token == "1,2,3"
    assert legacy.from_output_token(token, "TreeNode*") != [1, None, 2, 3]


def test_infer_from_expected_follows_expected_shape():
    assert marshaler.infer_from_expected("3", 3) == 3
    assert marshaler.infer_from_expected("2.5", 2.0) == 2.5
    assert marshaler.infer_from_expected("true", False) is True
    assert marshaler.infer_from_expected("1,2", [0]) == [1, 2]
    assert marshaler.infer_from_expected("", [1]) == []
    assert marshaler.infer_from_expected("1,2", ["1", "2"]) == ["1", "2"]
    assert marshaler.infer_from_expected("1,null,2", [1, None, 2]) == [1, None, 2]
    assert marshaler.infer_from_expected("a:1", {"a": 0}) == {"a": 1}
    assert marshaler.infer_from_expected("abc", "x") == "abc"


def test_infer_from_expected_rejects_garbage():
    with pytest.raises(ValueError):
        marshaler.infer_from_expected("x", 5)
    with pytest.raises(ValueError):
        marshaler.infer_from_expected("maybe", True)


def test_unknown_tree_order_rejected():
    with pytest.raises(ValueError):
        TypeMarshaler(tree_output_order="inorder")
