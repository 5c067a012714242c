"""
Rule expression language.

Expressions use Python syntax restricted to property lookups, comparisons,
boolean logic, simple arithmetic and a fixed set of helper functions. They are
parsed once with `ast`, checked against a whitelist, and interpreted against a
context mapping for every resource. Nothing is passed to eval().
"""

from __future__ import annotations

import ast
import operator
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional


class EvaluationError(Exception):
    """Raised when an expression cannot produce a value for the given context."""


class MissingPropertyError(EvaluationError):
    """Raised when an expression reads a property the resource does not have."""


_NAME_ALIASES: Dict[str, Any] = {"true": True, "false": False, "null": None}


def _require_str(value: Any, fn: str) -> str:
    if not isinstance(value, str):
        raise EvaluationError(f"{fn}() expects a string, got {type(value).__name__}")
    return value


def _contains(container: Any, item: Any) -> bool:
    if container is None:
        raise EvaluationError("contains() on null")
    return item in container


def _count(values: Any) -> int:
    # null counts as an empty collection; ARM omits empty arrays.
    if values is None:
        return 0
    return len(values)


def _coalesce(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "len": len,
    "any": any,
    "all": all,
    "min": min,
    "max": max,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "lower": lambda s: _require_str(s, "lower").lower(),
    "upper": lambda s: _require_str(s, "upper").upper(),
    "startswith": lambda s, prefix: _require_str(s, "startswith").startswith(prefix),
    "endswith": lambda s, suffix: _require_str(s, "endswith").endswith(suffix),
    "contains": _contains,
    "coalesce": _coalesce,
    "count": _count,
}

STRING_METHODS = frozenset({"startswith", "endswith", "lower", "upper", "strip"})

_BIN_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}

_COMPARE_OPS: Dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
    ast.In: lambda a, b: _contains(b, a),
    ast.NotIn: lambda a, b: not _contains(b, a),
}

_ALLOWED_NODES = (
    ast.Expression,
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.Store,
    ast.Attribute,
    ast.Subscript,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.UnaryOp,
    ast.Not,
    ast.USub,
    ast.BinOp,
    ast.Compare,
    ast.IfExp,
    ast.List,
    ast.Tuple,
    ast.Call,
    ast.GeneratorExp,
    ast.ListComp,
    ast.comprehension,
) + tuple(_BIN_OPS) + tuple(_COMPARE_OPS)


def _check_node(node: ast.AST) -> None:
    if not isinstance(node, _ALLOWED_NODES):
        raise ValueError(f"unsupported syntax: {type(node).__name__}")
    if isinstance(node, ast.Name) and node.id.startswith("_"):
        raise ValueError(f"name '{node.id}' is not allowed")
    if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
        raise ValueError(f"attribute '{node.attr}' is not allowed")
    if isinstance(node, ast.Call):
        if node.keywords:
            raise ValueError("keyword arguments are not supported")
        func = node.func
        if isinstance(func, ast.Name):
            if func.id not in FUNCTIONS:
                raise ValueError(f"unknown function '{func.id}'")
        elif isinstance(func, ast.Attribute):
            if func.attr not in STRING_METHODS:
                raise ValueError(f"unknown method '{func.attr}'")
        else:
            raise ValueError("only named functions can be called")
    if isinstance(node, (ast.GeneratorExp, ast.ListComp)):
        if len(node.generators) != 1:
            raise ValueError("comprehensions support a single 'for' clause")
        gen = node.generators[0]
        if gen.is_async or not isinstance(gen.target, ast.Name):
            raise ValueError("comprehension target must be a plain name")


@dataclass(frozen=True)
class CompiledExpression:
    """
    A parsed and validated expression. `error` is set (and `tree` is None) when
    the source did not compile; evaluating it raises EvaluationError.
    """

    source: str
    tree: Optional[ast.Expression] = field(default=None, compare=False, repr=False)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.tree is not None

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        if self.tree is None:
            raise EvaluationError(self.error or "expression did not compile")
        try:
            return _Interpreter(context).eval(self.tree.body, {})
        except EvaluationError:
            raise
        except (TypeError, ValueError, ArithmeticError, LookupError, AttributeError, RecursionError) as e:
            raise EvaluationError(f"{type(e).__name__}: {e}") from e


def compile_expression(source: str) -> CompiledExpression:
    text = (source or "").strip()
    if not text:
        return CompiledExpression(source=source, error="empty expression")
    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError as e:
        return CompiledExpression(source=source, error=f"syntax error: {e.msg}")
    try:
        for node in ast.walk(tree):
            _check_node(node)
    except ValueError as e:
        return CompiledExpression(source=source, error=str(e))
    return CompiledExpression(source=source, tree=tree)


def get_member(obj: Any, name: str) -> Any:
    """
    Property lookup used for both `a.b` and `a["b"]`: exact key first, then a
    case-insensitive match, so SDK-style (`Sku`) and ARM-style (`sku`) names both resolve.
    """
    if obj is None:
        raise MissingPropertyError(f"cannot read '{name}' of null")
    if not isinstance(obj, Mapping):
        raise MissingPropertyError(f"{type(obj).__name__} value has no property '{name}'")
    if name in obj:
        return obj[name]
    lowered = name.lower()
    for key in obj:
        if isinstance(key, str) and key.lower() == lowered:
            return obj[key]
    raise MissingPropertyError(f"property '{name}' not found")


class _Interpreter:
    def __init__(self, context: Mapping[str, Any]) -> None:
        self._context = context

    def eval(self, node: ast.AST, scope: Dict[str, Any]) -> Any:
        method = getattr(self, f"_eval_{type(node).__name__}", None)
        if method is None:
            raise EvaluationError(f"unsupported syntax: {type(node).__name__}")
        return method(node, scope)

    def _eval_Constant(self, node: ast.Constant, scope: Dict[str, Any]) -> Any:
        return node.value

    def _eval_Name(self, node: ast.Name, scope: Dict[str, Any]) -> Any:
        if node.id in scope:
            return scope[node.id]
        if node.id in self._context:
            return self._context[node.id]
        if node.id in _NAME_ALIASES:
            return _NAME_ALIASES[node.id]
        raise EvaluationError(f"unknown name '{node.id}'")

    def _eval_Attribute(self, node: ast.Attribute, scope: Dict[str, Any]) -> Any:
        return get_member(self.eval(node.value, scope), node.attr)

    def _eval_Subscript(self, node: ast.Subscript, scope: Dict[str, Any]) -> Any:
        target = self.eval(node.value, scope)
        key = self.eval(node.slice, scope)
        if isinstance(key, str):
            return get_member(target, key)
        if target is None:
            raise MissingPropertyError(f"cannot index null with {key!r}")
        if isinstance(target, (list, tuple, str)) and isinstance(key, int):
            try:
                return target[key]
            except IndexError:
                raise MissingPropertyError(f"index {key} out of range") from None
        raise EvaluationError(f"cannot index {type(target).__name__} with {type(key).__name__}")

    def _eval_BoolOp(self, node: ast.BoolOp, scope: Dict[str, Any]) -> Any:
        value: Any = None
        for operand in node.values:
            value = self.eval(operand, scope)
            if isinstance(node.op, ast.And) and not value:
                return value
            if isinstance(node.op, ast.Or) and value:
                return value
        return value

    def _eval_UnaryOp(self, node: ast.UnaryOp, scope: Dict[str, Any]) -> Any:
        operand = self.eval(node.operand, scope)
        if isinstance(node.op, ast.Not):
            return not operand
        return -operand

    def _eval_BinOp(self, node: ast.BinOp, scope: Dict[str, Any]) -> Any:
        return _BIN_OPS[type(node.op)](self.eval(node.left, scope), self.eval(node.right, scope))

    def _eval_Compare(self, node: ast.Compare, scope: Dict[str, Any]) -> bool:
        left = self.eval(node.left, scope)
        for op, comparator in zip(node.ops, node.comparators):
            right = self.eval(comparator, scope)
            if not _COMPARE_OPS[type(op)](left, right):
                return False
            left = right
        return True

    def _eval_IfExp(self, node: ast.IfExp, scope: Dict[str, Any]) -> Any:
        if self.eval(node.test, scope):
            return self.eval(node.body, scope)
        return self.eval(node.orelse, scope)

    def _eval_List(self, node: ast.List, scope: Dict[str, Any]) -> List[Any]:
        return [self.eval(elt, scope) for elt in node.elts]

    def _eval_Tuple(self, node: ast.Tuple, scope: Dict[str, Any]) -> List[Any]:
        return [self.eval(elt, scope) for elt in node.elts]

    def _eval_Call(self, node: ast.Call, scope: Dict[str, Any]) -> Any:
        args = [self.eval(arg, scope) for arg in node.args]
        func = node.func
        if isinstance(func, ast.Name):
            return FUNCTIONS[func.id](*args)
        target = self.eval(func.value, scope)  # type: ignore[attr-defined]
        if not isinstance(target, str):
            raise EvaluationError(f"{func.attr}() expects a string, got {type(target).__name__}")  # type: ignore[attr-defined]
        return getattr(target, func.attr)(*args)  # type: ignore[attr-defined]

    def _iterate(self, node: ast.AST, scope: Dict[str, Any]) -> Iterable[Any]:
        gen: ast.comprehension = node.generators[0]  # type: ignore[attr-defined]
        items = self.eval(gen.iter, scope)
        if items is None:
            raise MissingPropertyError("cannot iterate over null")
        name = gen.target.id  # type: ignore[attr-defined]
        out = []
        for item in items:
            inner = dict(scope)
            inner[name] = item
            if all(self.eval(cond, inner) for cond in gen.ifs):
                out.append(self.eval(node.elt, inner))  # type: ignore[attr-defined]
        return out

    def _eval_GeneratorExp(self, node: ast.GeneratorExp, scope: Dict[str, Any]) -> Iterable[Any]:
        return self._iterate(node, scope)

    def _eval_ListComp(self, node: ast.ListComp, scope: Dict[str, Any]) -> Iterable[Any]:
        return self._iterate(node, scope)
