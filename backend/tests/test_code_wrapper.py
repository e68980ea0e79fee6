import json

import pytest

from codejudge.core.exceptions import ValidationError
from codejudge.models.problem import CodeTemplate
from codejudge.services.code_wrapper import CodeWrapper

wrapper = CodeWrapper()


def test_wrap_replaces_first_placeholder_only():
    template = CodeTemplate(language="python", wrapper_code="{USER_CODE}\nprint('{USER_CODE}')")
    assert wrapper.wrap("def f(): pass", template) == "def f(): pass\nprint('{USER_CODE}')"


def test_wrap_missing_template():
    with pytest.raises(ValidationError, match="Wrapper code missing for language python"):
        wrapper.wrap("x = 1", None, language="python")


def test_wrap_without_placeholder():
    template = CodeTemplate(language="python", wrapper_code="print(1)")
    with pytest.raises(ValidationError):
        wrapper.wrap("x = 1", template)


def test_custom_placeholder():
    template = CodeTemplate(language="cpp", wrapper_code="// <<CODE>>\nint main() {}")
    assert CodeWrapper("<<CODE>>").wrap("int f();", template) == "// int f();\nint main() {}"


def test_prepare_stdin_reads_data_then_top_level():
    params = [{"name": "nums", "type": "int[]"}, {"name": "target", "type": "int"}]
    stdin = CodeWrapper.prepare_stdin({"data": {"nums": [2, 7, 11]}, "target": 9}, params)
    assert stdin.split("\n") == ["[2,7,11]", "9"]


def test_prepare_stdin_missing_parameter_is_null():
    params = [{"name": "s"}, {"name": "k"}]
    stdin = CodeWrapper.prepare_stdin({"s": "héllo"}, params)
    lines = stdin.split("\n")
    assert json.loads(lines[0]) == "héllo"
    assert lines[1] == "null"


def test_prepare_stdin_without_params():
    assert CodeWrapper.prepare_stdin({"x": 1}, None) == ""
    assert CodeWrapper.prepare_stdin({"x": 1}, []) == ""
