import shutil
import subprocess

import pytest

from codejudge.schemas.judge import TestCase
from codejudge.services.harness_generator import HarnessGenerator
from codejudge.services.output_grader import FAILED, PASSED, OutputGrader
from codejudge.services.type_marshaler import TypeMarshaler

pytestmark = pytest.mark.skipif(shutil.which("g++") is None, reason="g++ not installed")

marshaler = TypeMarshaler()
generator = HarnessGenerator(marshaler)
grader = OutputGrader(marshaler)

INORDER = """
vector<int> inorderTraversal(TreeNode* root) {
    vector<int> out;
    walk(root, out);
    return out;
}
void walk(TreeNode* node, vector<int>& out) {
    if (!node) return;
    walk(node->left, out);
    out.push_back(node->val);
    walk(node->right, out);
}
"""


def run_harness(tmp_path, code, function_name, return_type, test_cases, expected):
    source = generator.generate(code, function_name, return_type, test_cases)
    source_path = tmp_path / "code.cpp"
    binary = tmp_path / "program"
    source_path.write_text(source)

    compiled = subprocess.run(
        ["g++", "-std=c++17", "-O2", "-o", str(binary), str(source_path)],
        capture_output=True, text=True, timeout=120,
    )
    assert compiled.returncode == 0, compiled.stdout + compiled.stderr

    ran = subprocess.run([str(binary)], capture_output=True, text=True, timeout=30)
    assert ran.returncode == 0, ran.stderr
    return grader.parse(ran.stdout, test_cases, expected)


def test_add_passes_and_fails_against_expected(tmp_path):
    cases = [
        TestCase(id=1, inputs=[5, 3], input_types=["int", "int"]),
        TestCase(id=2, inputs=[5, 3], input_types=["int", "int"]),
    ]
    verdicts = run_harness(tmp_path, "int add(int a, int b) { return a + b; }", "add", "int", cases, [8, 9])

    assert [v.status for v in verdicts] == [PASSED, FAILED]
    assert verdicts[1].actual == 8
    assert all(v.execution_time_micros >= 0 for v in verdicts)


def test_inorder_traversal_of_tree_input(tmp_path):
    cases = [
        TestCase(id="tree", inputs=[[1, None, 2, 3]], input_types=["TreeNode*"]),
        TestCase(id="empty", inputs=[[]], input_types=["TreeNode*"]),
    ]
    verdicts = run_harness(tmp_path, INORDER, "inorderTraversal", "vector<int>", cases, [[1, 3, 2], []])

    assert [v.status for v in verdicts] == [PASSED, PASSED]
    assert verdicts[0].actual == [1, 3, 2]


def test_tree_result_round_trips_in_level_order(tmp_path):
    cases = [TestCase(id=1, inputs=[[1, None, 2, 3]], input_types=["TreeNode*"])]
    code = "TreeNode* identity(TreeNode* root) { return root; }"
    verdicts = run_harness(tmp_path, code, "identity", "TreeNode*", cases, [[1, None, 2, 3]])

    assert verdicts[0].status == PASSED
    assert verdicts[0].actual == [1, None, 2, 3]


def test_string_result_with_separators(tmp_path):
    cases = [TestCase(id=1, inputs=["key"], input_types=["string"])]
    code = 'string label(string s) { return s + ":a,b"; }'
    verdicts = run_harness(tmp_path, code, "label", "string", cases, ["key:a,b"])

    assert verdicts[0].status == PASSED
    assert verdicts[0].actual == "key:a,b"
