"""Type-aware marshaling between JSON test values and C++ harness source/output.

The harness runs in a separate process and can only report results as text,
so every supported type tag gets exactly one branch here: one for building
the C++ declaration of an input, one for printing a result, and one for
reading the printed token back into a JSON value.
"""

from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Optional

from codejudge.core.exceptions import UnsupportedTypeError, ValidationError

SENTINEL = -1
NULL_TOKEN = "null"
ELEMENT_SEPARATOR = ","
PAIR_SEPARATOR = ":"

PRIMITIVE_TYPES = ("int", "double", "bool", "string", "char")
POINTER_TYPES = ("TreeNode*", "ListNode*")
RETURN_ONLY_TYPES = ("set<int>", "map<string, int>")
# Recognised by request validation so the error is specific, never generated.
VALIDATION_ONLY_TYPES = ("int[]", "double[]", "string[]", "vector<vector<int>>", "vector<vector<char>>")

TREE_ORDERS = ("level", "preorder")

_CPP_TYPES = {
    "int": "int",
    "double": "double",
    "bool": "bool",
    "string": "string",
    "char": "char",
}

_VECTOR_RE = re.compile(r"^vector<(\w+)>$")
_INT_RE = re.compile(r"^[+-]?\d+$")


def normalize_type(type_tag: Any) -> str:
    """Canonical spelling of a type tag ("vector< int >" -> "vector<int>")."""
    if not isinstance(type_tag, str):
        raise UnsupportedTypeError(type_tag)
    tag = re.sub(r"\s+", "", type_tag)
    if tag.startswith("map<") and "," in tag:
        tag = tag.replace(",", ", ")
    if tag == "std::string":
        tag = "string"
    return tag


def vector_element_type(type_tag: str) -> Optional[str]:
    match = _VECTOR_RE.match(type_tag)
    if match and match.group(1) in PRIMITIVE_TYPES:
        return match.group(1)
    return None


def is_supported_input_type(type_tag: Any) -> bool:
    try:
        tag = normalize_type(type_tag)
    except UnsupportedTypeError:
        return False
    return tag in PRIMITIVE_TYPES or tag in POINTER_TYPES or vector_element_type(tag) is not None


def is_supported_return_type(type_tag: Any) -> bool:
    if not isinstance(type_tag, str):
        return False
    if is_supported_input_type(type_tag):
        return True
    return normalize_type(type_tag) in RETURN_ONLY_TYPES


def is_known_type(type_tag: Any) -> bool:
    """Supported anywhere, including the validation-only subset."""
    if not isinstance(type_tag, str):
        return False
    if is_supported_return_type(type_tag):
        return True
    return normalize_type(type_tag) in VALIDATION_ONLY_TYPES


def escape_cpp(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("'", "\\'")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("\0", "\\0")
    )


def escape_token(text: str) -> str:
    """Python mirror of the harness' ``__judge::escape`` used on string results."""
    out = []
    for ch in text:
        if ch == "\\":
            out.append("\\\\")
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif ch in (ELEMENT_SEPARATOR, PAIR_SEPARATOR):
            out.append("\\" + ch)
        else:
            out.append(ch)
    return "".join(out)


def unescape_token(token: str) -> str:
    out = []
    i = 0
    while i < len(token):
        ch = token[i]
        if ch == "\\" and i + 1 < len(token):
            nxt = token[i + 1]
            out.append({"n": "\n", "r": "\r"}.get(nxt, nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def split_escaped(token: str, separator: str) -> List[str]:
    """Split on ``separator`` ignoring backslash-escaped occurrences.

    Parts keep their escapes; callers unescape after splitting.
    """
    parts = []
    current = []
    i = 0
    while i < len(token):
        ch = token[i]
        if ch == "\\" and i + 1 < len(token):
            current.append(token[i:i + 2])
            i += 2
            continue
        if ch == separator:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    parts.append("".join(current))
    return parts


def parse_number(token: str) -> Any:
    text = token.strip()
    if _INT_RE.match(text):
        return int(text)
    return float(text)


def parse_bool(token: str) -> bool:
    text = token.strip().lower()
    if text in ("1", "true"):
        return True
    if text in ("0", "false"):
        return False
    raise ValueError(f"Not a boolean token: {token!r}")


def _is_sentinel(value: Any) -> bool:
    if value is None or value == NULL_TOKEN:
        return True
    return not isinstance(value, bool) and value == SENTINEL


# Support code shared by every harness. Result printing goes through these
# helpers so a result is always exactly one line.
SUPPORT_SOURCE = r"""
namespace __judge {
    static string escape(const string& s) {
        string out;
        out.reserve(s.size());
        for (char c : s) {
            switch (c) {
                case '\\': out += "\\\\"; break;
                case '\n': out += "\\n"; break;
                case '\r': out += "\\r"; break;
                case ',': out += "\\,"; break;
                case ':': out += "\\:"; break;
                default: out += c; break;
            }
        }
        return out;
    }

    static string join(const vector<string>& parts) {
        string out;
        for (size_t i = 0; i < parts.size(); ++i) {
            if (i) out += ",";
            out += parts[i];
        }
        return out;
    }

    static string tree_level(TreeNode* root) {
        vector<string> parts;
        queue<TreeNode*> pending;
        if (root) pending.push(root);
        while (!pending.empty()) {
            TreeNode* node = pending.front(); pending.pop();
            if (!node) { parts.push_back("null"); continue; }
            parts.push_back(to_string(node->val));
            pending.push(node->left);
            pending.push(node->right);
        }
        while (!parts.empty() && parts.back() == "null") parts.pop_back();
        return join(parts);
    }

    static void tree_preorder_walk(TreeNode* node, vector<string>& parts) {
        if (!node) return;
        parts.push_back(to_string(node->val));
        tree_preorder_walk(node->left, parts);
        tree_preorder_walk(node->right, parts);
    }

    static string tree_preorder(TreeNode* root) {
        vector<string> parts;
        tree_preorder_walk(root, parts);
        return join(parts);
    }

    static string list_values(ListNode* head) {
        vector<string> parts;
        for (ListNode* node = head; node != nullptr; node = node->next) {
            parts.push_back(to_string(node->val));
        }
        return join(parts);
    }
}
"""


class TypeMarshaler:
    """Converts typed JSON values to C++ source and printed tokens back to JSON."""

    def __init__(self, tree_output_order: str = "level"):
        if tree_output_order not in TREE_ORDERS:
            raise ValueError(f"Unknown tree output order: {tree_output_order}")
        self.tree_output_order = tree_output_order

    # ------------------------------------------------------------------
    # Input side
    # ------------------------------------------------------------------
    def to_source_literal(self, value: Any, type_tag: str) -> str:
        """C++ literal for ``value``; pointer types yield their flat sentinel array."""
        tag = normalize_type(type_tag)

        if tag == "int":
            return str(self._as_int(value))
        if tag == "double":
            return self._double_literal(value)
        if tag == "bool":
            return "true" if self._as_bool(value) else "false"
        if tag == "string":
            if not isinstance(value, str):
                raise ValidationError(f"Expected a string value, got {value!r}")
            return f'"{escape_cpp(value)}"'
        if tag == "char":
            if not isinstance(value, str) or len(value) != 1:
                raise ValidationError(f"Expected a single character, got {value!r}")
            return f"'{escape_cpp(value)}'"

        element = vector_element_type(tag)
        if element is not None:
            items = self._as_list(value, tag)
            return "{" + ",".join(self.to_source_literal(item, element) for item in items) + "}"

        if tag in POINTER_TYPES:
            items = self._as_list(value, tag)
            return "{" + ",".join(str(v) for v in self._sentinel_values(items)) + "}"

        raise UnsupportedTypeError(type_tag)

    def cpp_type(self, type_tag: str) -> str:
        tag = normalize_type(type_tag)
        if tag in _CPP_TYPES:
            return _CPP_TYPES[tag]
        element = vector_element_type(tag)
        if element is not None:
            return f"vector<{_CPP_TYPES[element]}>"
        if tag in POINTER_TYPES:
            return tag
        raise UnsupportedTypeError(type_tag)

    def declare(self, var: str, value: Any, type_tag: str) -> List[str]:
        """Statements that declare ``var`` initialised from ``value``."""
        tag = normalize_type(type_tag)

        if tag == "TreeNode*":
            values_var = f"{var}_values"
            # Breadth-first pointer slots: each created node queues the
            # addresses of its two child slots, filled in array order.
            return [
                f"TreeNode* {var} = nullptr;",
                f"vector<int> {values_var} = {self.to_source_literal(value, tag)};",
                "{",
                "    queue<TreeNode**> slots;",
                f"    slots.push(&{var});",
                f"    for (size_t idx = 0; idx < {values_var}.size() && !slots.empty(); ++idx) {{",
                "        TreeNode** slot = slots.front(); slots.pop();",
                f"        if ({values_var}[idx] == {SENTINEL}) continue;",
                f"        *slot = new TreeNode({values_var}[idx]);",
                "        slots.push(&((*slot)->left));",
                "        slots.push(&((*slot)->right));",
                "    }",
                "}",
            ]

        if tag == "ListNode*":
            values_var = f"{var}_values"
            return [
                f"ListNode* {var} = nullptr;",
                f"vector<int> {values_var} = {self.to_source_literal(value, tag)};",
                "{",
                "    ListNode* tail = nullptr;",
                f"    for (int v : {values_var}) {{",
                f"        if (v == {SENTINEL}) continue;",
                "        ListNode* node = new ListNode(v);",
                f"        if (tail == nullptr) {var} = node; else tail->next = node;",
                "        tail = node;",
                "    }",
                "}",
            ]

        return [f"{self.cpp_type(tag)} {var} = {self.to_source_literal(value, tag)};"]

    # ------------------------------------------------------------------
    # Output side
    # ------------------------------------------------------------------
    def emit_result(self, var: str, return_type: str) -> List[str]:
        """Statements printing ``var`` as one protocol token followed by a newline."""
        tag = normalize_type(return_type)

        if tag in ("int", "double", "bool"):
            return [f"cout << {var} << endl;"]
        if tag == "string":
            return [f"cout << __judge::escape({var}) << endl;"]
        if tag == "char":
            return [f"cout << __judge::escape(string(1, {var})) << endl;"]

        element = vector_element_type(tag)
        if element is not None or tag == "set<int>":
            if element == "string":
                item = "__judge::escape(item)"
            elif element == "char":
                item = "__judge::escape(string(1, item))"
            else:
                item = "item"
            return [
                "{",
                "    bool first = true;",
                f"    for (const auto& item : {var}) {{",
                "        if (!first) cout << \",\";",
                f"        cout << {item};",
                "        first = false;",
                "    }",
                "    cout << endl;",
                "}",
            ]
        if tag == "map<string, int>":
            return [
                "{",
                "    bool first = true;",
                f"    for (const auto& entry : {var}) {{",
                "        if (!first) cout << \",\";",
                "        cout << __judge::escape(entry.first) << \":\" << entry.second;",
                "        first = false;",
                "    }",
                "    cout << endl;",
                "}",
            ]
        if tag == "TreeNode*":
            helper = "tree_level" if self.tree_output_order == "level" else "tree_preorder"
            return [f"cout << __judge::{helper}({var}) << endl;"]
        if tag == "ListNode*":
            # An empty list prints an empty line, not a token.
            return [f"cout << __judge::list_values({var}) << endl;"]

        raise UnsupportedTypeError(return_type)

    def to_output_token(self, value: Any, type_tag: str) -> str:
        """The token the harness prints for ``value`` of ``type_tag``."""
        tag = normalize_type(type_tag)

        if tag == "int":
            return str(self._as_int(value))
        if tag == "double":
            return format(float(value), ".15g")
        if tag == "bool":
            return "true" if self._as_bool(value) else "false"
        if tag in ("string", "char"):
            return escape_token(str(value))

        element = vector_element_type(tag)
        if element is not None:
            return ELEMENT_SEPARATOR.join(self.to_output_token(v, element) for v in self._as_list(value, tag))
        if tag == "set<int>":
            return ELEMENT_SEPARATOR.join(str(v) for v in sorted(set(self._as_int(v) for v in value)))
        if tag == "map<string, int>":
            return ELEMENT_SEPARATOR.join(
                f"{escape_token(str(k))}{PAIR_SEPARATOR}{self._as_int(v)}" for k, v in sorted(value.items())
            )
        if tag == "TreeNode*":
            root = self._build_tree(self._as_list(value, tag))
            if self.tree_output_order == "level":
                return ELEMENT_SEPARATOR.join(self._tree_level(root))
            return ELEMENT_SEPARATOR.join(self._tree_preorder(root))
        if tag == "ListNode*":
            values = [v for v in self._sentinel_values(self._as_list(value, tag)) if v != SENTINEL]
            return ELEMENT_SEPARATOR.join(str(v) for v in values)

        raise UnsupportedTypeError(type_tag)

    def from_output_token(self, token: str, expected_type: str) -> Any:
        """Inverse of the harness printing for a declared type tag."""
        tag = normalize_type(expected_type)

        if tag == "int":
            return int(token.strip())
        if tag == "double":
            return float(token.strip())
        if tag == "bool":
            return parse_bool(token)
        if tag in ("string", "char"):
            return unescape_token(token)

        element = vector_element_type(tag)
        if element is not None:
            if token == "":
                return []
            return [self.from_output_token(part, element) for part in split_escaped(token, ELEMENT_SEPARATOR)]
        if tag == "set<int>":
            return [] if token == "" else [int(part) for part in token.split(ELEMENT_SEPARATOR)]
        if tag == "map<string, int>":
            return self._parse_pairs(token)
        if tag in POINTER_TYPES:
            if token == "":
                return []
            return [None if part == NULL_TOKEN else int(part) for part in token.split(ELEMENT_SEPARATOR)]

        raise UnsupportedTypeError(expected_type)

    def infer_from_expected(self, token: str, expected: Any) -> Any:
        """Inverse-marshal ``token`` using the runtime shape of ``expected``.

        Raises ValueError when the token cannot take that shape.
        """
        if isinstance(expected, bool):
            return parse_bool(token)
        if isinstance(expected, (int, float)):
            return parse_number(token)
        if isinstance(expected, list):
            if token.strip() == "":
                return []
            parts = split_escaped(token, ELEMENT_SEPARATOR)
            values = []
            for index, part in enumerate(parts):
                hint = expected[index] if index < len(expected) else (expected[-1] if expected else None)
                values.append(self._infer_element(part, hint))
            return values
        if isinstance(expected, dict):
            return self._parse_pairs(token)
        if isinstance(expected, str):
            return unescape_token(token)
        return self._infer_element(token, None)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _infer_element(self, part: str, hint: Any) -> Any:
        text = part.strip()
        if hint is None:
            if text == NULL_TOKEN:
                return None
            if text in ("true", "false"):
                return text == "true"
            try:
                return parse_number(text)
            except ValueError:
                return unescape_token(part)
        if isinstance(hint, str):
            return unescape_token(part)
        if isinstance(hint, list):
            raise ValueError("Nested sequences are not part of the output protocol")
        return self.infer_from_expected(part, hint)

    @staticmethod
    def _parse_pairs(token: str) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if token.strip() == "":
            return result
        for pair in split_escaped(token, ELEMENT_SEPARATOR):
            pieces = split_escaped(pair, PAIR_SEPARATOR)
            if len(pieces) != 2:
                raise ValueError(f"Malformed map entry: {pair!r}")
            result[unescape_token(pieces[0])] = parse_number(pieces[1])
        return result

    @staticmethod
    def _as_int(value: Any) -> int:
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str) and _INT_RE.match(value.strip()):
            return int(value.strip())
        raise ValidationError(f"Expected an integer value, got {value!r}")

    @staticmethod
    def _as_bool(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            try:
                return parse_bool(value)
            except ValueError:
                pass
        raise ValidationError(f"Expected a boolean value, got {value!r}")

    @staticmethod
    def _double_literal(value: Any) -> str:
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Expected a numeric value, got {value!r}")
        if isinstance(value, bool):
            raise ValidationError(f"Expected a numeric value, got {value!r}")
        if math.isnan(number):
            return "numeric_limits<double>::quiet_NaN()"
        if math.isinf(number):
            return ("-" if number < 0 else "") + "numeric_limits<double>::infinity()"
        return repr(number)

    @staticmethod
    def _as_list(value: Any, tag: str) -> List[Any]:
        if not isinstance(value, list):
            raise ValidationError(f"Expected an array for {tag}, got {value!r}")
        return value

    def _sentinel_values(self, items: List[Any]) -> List[int]:
        return [SENTINEL if _is_sentinel(item) else self._as_int(item) for item in items]

    def _build_tree(self, items: List[Any]) -> Optional[Dict[str, Any]]:
        """Python mirror of the harness' breadth-first slot construction."""
        holder: Dict[str, Any] = {"left": None}
        slots = [(holder, "left")]
        for raw in self._sentinel_values(items):
            if not slots:
                break
            parent, side = slots.pop(0)
            if raw == SENTINEL:
                continue
            node = {"val": raw, "left": None, "right": None}
            parent[side] = node
            slots.append((node, "left"))
            slots.append((node, "right"))
        return holder["left"]

    @staticmethod
    def _tree_level(root: Optional[Dict[str, Any]]) -> List[str]:
        parts: List[str] = []
        pending = [root] if root else []
        while pending:
            node = pending.pop(0)
            if node is None:
                parts.append(NULL_TOKEN)
                continue
            parts.append(str(node["val"]))
            pending.append(node["left"])
            pending.append(node["right"])
        while parts and parts[-1] == NULL_TOKEN:
            parts.pop()
        return parts

    def _tree_preorder(self, node: Optional[Dict[str, Any]]) -> List[str]:
        if node is None:
            return []
        return [str(node["val"])] + self._tree_preorder(node["left"]) + self._tree_preorder(node["right"])


