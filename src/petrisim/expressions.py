"""Compile textual rate/action formulas into plain closures with sympy."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

import sympy as sp

from .errors import ConstructionError


@dataclass(frozen=True)
class CompiledExpression:
    """Closure over ``leading + tokens`` arguments, in that order."""

    text: str
    tokens: Tuple[str, ...]
    leading: Tuple[str, ...]
    func: Callable[..., float]
    sympy_expr: sp.Expr

    def __call__(self, *args: float) -> float:
        return self.func(*args)

    @property
    def arity(self) -> int:
        return len(self.leading) + len(self.tokens)


def _substitute(text: str, names: Sequence[str], safe: Dict[str, str]) -> str:
    # Longest names first so that "AB" is not split into "A" + "B".
    ordered = sorted(names, key=len, reverse=True)
    placeholders: Dict[str, str] = {}
    for idx, name in enumerate(ordered):
        placeholder = f"__PLACEHOLDER_{idx}__"
        text = re.sub(rf"(?<![\w.]){re.escape(name)}(?![\w])", placeholder, text)
        placeholders[placeholder] = safe[name]
    for placeholder, symbol in placeholders.items():
        text = text.replace(placeholder, symbol)
    return text


def compile_expression(
    text: str,
    names: Sequence[str],
    *,
    parameters: Optional[Mapping[str, float]] = None,
    leading: Sequence[str] = (),
    all_names: bool = False,
) -> CompiledExpression:
    """Compile ``text`` into a closure taking ``leading`` then place markings.

    ``names`` are the candidate place names. With ``all_names`` the closure
    takes every candidate (unused ones included), otherwise only the
    referenced ones, in candidate order.
    """
    params = dict(parameters or {})
    candidates = list(dict.fromkeys(names))
    clash = set(candidates) & (set(params) | set(leading))
    if clash:
        raise ConstructionError(f"Names used both as places and parameters: {sorted(clash)}")
    known = candidates + list(leading) + list(params)
    safe = {name: f"SYM_{idx}" for idx, name in enumerate(known)}
    reverse = {symbol: name for name, symbol in safe.items()}
    try:
        expr = sp.sympify(_substitute(text.replace("^", "**"), known, safe))
    except (sp.SympifyError, SyntaxError, TypeError) as exc:
        raise ConstructionError(f"Failed to parse expression '{text}': {exc}") from exc
    expr = expr.subs({sp.Symbol(safe[name]): value for name, value in params.items()})
    unknown = sorted(str(sym) for sym in expr.free_symbols if str(sym) not in reverse)
    if unknown:
        raise ConstructionError(f"Expression '{text}' references unknown names: {', '.join(unknown)}")
    used = {reverse[str(sym)] for sym in expr.free_symbols}
    tokens = tuple(name for name in candidates if all_names or name in used)
    arguments = [sp.Symbol(safe[name]) for name in list(leading) + list(tokens)]
    func = sp.lambdify(arguments, expr, modules=["math"])
    return CompiledExpression(
        text=text,
        tokens=tokens,
        leading=tuple(leading),
        func=func,
        sympy_expr=expr,
    )


__all__ = ["CompiledExpression", "compile_expression"]
