"""Builds the self-contained C++ program that runs every test case."""

from __future__ import annotations

import logging
import re
from typing import Any, List, Sequence, Tuple

from codejudge.core.exceptions import UnsupportedTypeError, ValidationError
from codejudge.services.type_marshaler import (
    SUPPORT_SOURCE,
    TypeMarshaler,
    is_supported_input_type,
    is_supported_return_type,
)

logger = logging.getLogger(__name__)

RESULT_PREFIX = "TEST_CASE_"

LIBRARIES = """#include <iostream>
#include <iomanip>
#include <vector>
#include <string>
#include <algorithm>
#include <chrono>
#include <queue>
#include <stack>
#include <map>
#include <set>
#include <unordered_map>
#include <unordered_set>
#include <limits>
#include <climits>
#include <cmath>
#include <numeric>
#include <functional>
#include <sstream>
#include <utility>
using namespace std;
"""

NODE_TYPES = """
struct ListNode {
    int val;
    ListNode* next;
    ListNode() : val(0), next(nullptr) {}
    ListNode(int x) : val(x), next(nullptr) {}
    ListNode(int x, ListNode* next) : val(x), next(next) {}
};

struct TreeNode {
    int val;
    TreeNode* left;
    TreeNode* right;
    TreeNode() : val(0), left(nullptr), right(nullptr) {}
    TreeNode(int x) : val(x), left(nullptr), right(nullptr) {}
    TreeNode(int x, TreeNode* left, TreeNode* right) : val(x), left(left), right(right) {}
};
"""

DRIVER_PROLOGUE = """
int main() {
    ios_base::sync_with_stdio(false);
    cout << boolalpha << setprecision(15);
    Solution solution;
"""

DRIVER_EPILOGUE = """
    return 0;
}
"""

_SOLUTION_CLASS_RE = re.compile(r"\bclass\s+Solution\b")
# Comments and string or character literals, blanked before looking for the class.
_COMMENT_OR_LITERAL_RE = re.compile(
    r"//[^\n]*"
    r"|/\*.*?\*/"
    r'|"(?:\\.|[^"\\\n])*"'
    r"|'(?:\\.|[^'\\\n])*'",
    re.DOTALL,
)
_FUNCTION_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
# Directives that cannot live inside a class body.
_HOISTED_RE = re.compile(r"^\s*(#\s*include\b.*|using\s+namespace\s+\w+\s*;)\s*$")


def _indent(lines: Sequence[str], depth: int) -> List[str]:
    pad = "    " * depth
    return [pad + line for line in lines]


class HarnessGenerator:
    """Generates ``libraries + solution + driver`` source for one run."""

    def __init__(self, marshaler: TypeMarshaler):
        self.marshaler = marshaler

    def generate(
        self,
        user_code: str,
        function_name: str,
        return_type: str,
        test_cases: Sequence[Any],
    ) -> str:
        if not _FUNCTION_NAME_RE.match(function_name or ""):
            raise ValidationError(f"Invalid function name: {function_name!r}")
        if not is_supported_return_type(return_type):
            raise UnsupportedTypeError(return_type)

        directives, solution = self.wrap_solution(user_code)

        parts = [LIBRARIES]
        parts.extend(directives)
        parts.append(NODE_TYPES)
        parts.append(SUPPORT_SOURCE)
        parts.append(solution)
        parts.append(DRIVER_PROLOGUE)
        for index, test_case in enumerate(test_cases):
            parts.append("\n".join(self._test_case_block(index, test_case, function_name, return_type)))
        parts.append(DRIVER_EPILOGUE)

        source = "\n".join(parts)
        logger.debug(f"Generated harness for {function_name} with {len(test_cases)} test cases")
        return source

    @staticmethod
    def wrap_solution(user_code: str) -> Tuple[List[str], str]:
        """Split out file-level directives and wrap bare methods in ``class Solution``."""
        directives: List[str] = []
        body: List[str] = []
        for line in user_code.splitlines():
            if _HOISTED_RE.match(line):
                directives.append(line.strip())
            else:
                body.append(line)
        code = "\n".join(body)

        if _SOLUTION_CLASS_RE.search(_COMMENT_OR_LITERAL_RE.sub(" ", code)):
            return directives, code
        return directives, "class Solution {\npublic:\n" + code + "\n};\n"

    def _test_case_block(self, index: int, test_case: Any, function_name: str, return_type: str) -> List[str]:
        test_id = str(test_case.id)
        if ":" in test_id or "\n" in test_id:
            raise ValidationError(f"Test case id {test_id!r} contains a reserved character")
        if len(test_case.inputs) != len(test_case.input_types):
            raise ValidationError(f"Test case {test_id} inputs and inputTypes differ in length")

        lines = [f"// Test Case {test_id}", "{"]
        args = []
        for position, (value, type_tag) in enumerate(zip(test_case.inputs, test_case.input_types)):
            if not is_supported_input_type(type_tag):
                raise UnsupportedTypeError(type_tag)
            var = f"arg_{index}_{position}"
            lines.extend(_indent(self.marshaler.declare(var, value, type_tag), 1))
            args.append(var)

        lines.extend(_indent([
            "auto started = chrono::high_resolution_clock::now();",
            f"auto result = solution.{function_name}({', '.join(args)});",
            "auto finished = chrono::high_resolution_clock::now();",
            "auto elapsed = chrono::duration_cast<chrono::microseconds>(finished - started).count();",
            f'cout << "{RESULT_PREFIX}{test_id}:{test_id}:" << elapsed << ":";',
        ], 1))
        lines.extend(_indent(self.marshaler.emit_result("result", return_type), 1))
        lines.append("}")
        return _indent(lines, 1)
