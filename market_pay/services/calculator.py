"""Calculator-style amount entry.

Operators type an amount and may chain ``+ - × ÷`` onto it. The calculator
keeps one pending operator and one pending operand; a second operator folds
the pending expression into a new left operand, so ``10 + 5 × 2`` is
``(10 + 5) × 2``. There is no precedence and there are no parentheses.
"""
from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext

CENT = Decimal('0.01')
ZERO = Decimal('0')
# Amount columns are NUMERIC(10, 2).
MAX_AMOUNT = Decimal('100000000')

OPERATORS = ('+', '-', '*', '/')
DISPLAY_SYMBOLS = {'+': '+', '-': '-', '*': '×', '/': '÷'}
OPERATOR_ALIASES = {'×': '*', 'x': '*', 'X': '*', '÷': '/'}
_NON_NUMERIC_RE = re.compile(r'[^0-9.]')


def calculate(left: Decimal, op: str, right: Decimal) -> Decimal:
    if op == '+':
        return left + right
    if op == '-':
        return left - right
    if op == '*':
        return left * right
    if op == '/':
        return left / right if right != 0 else ZERO
    return right


def sanitize_number(raw: str) -> str:
    cleaned = _NON_NUMERIC_RE.sub('', raw)
    parts = cleaned.split('.')
    if len(parts) > 2:
        return parts[0] + '.' + ''.join(parts[1:])
    return cleaned


def parse_number(text: str) -> Decimal:
    if not text or text == '.':
        return ZERO
    try:
        return Decimal(text)
    except InvalidOperation:
        return ZERO


def format_number(value: Decimal) -> str:
    return format(value.normalize(), 'f')


def format_money(value: Decimal) -> str:
    with localcontext() as ctx:
        # quantize needs room for every integer digit plus the cents.
        ctx.prec = max(ctx.prec, value.adjusted() + 3)
        return str(value.quantize(CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class ExpressionPreview:
    expression: str
    result: str


@dataclass
class CalculatorInput:
    on_change: Callable[[Decimal], None] | None = None
    current: str = ''
    previous: Decimal | None = None
    operator: str | None = None
    show_expression: bool = False
    value: Decimal = field(default=ZERO)

    @classmethod
    def from_value(cls, value: Decimal, on_change: Callable[[Decimal], None] | None = None) -> CalculatorInput:
        calc = cls(on_change=on_change)
        if value > 0:
            calc.current = format_number(value)
            calc.value = value
        return calc

    def _report(self, value: Decimal) -> None:
        self.value = value
        if self.on_change is not None:
            self.on_change(value)

    @property
    def has_pending_operator(self) -> bool:
        return self.operator is not None and self.previous is not None

    def pending_result(self) -> Decimal:
        if not self.has_pending_operator:
            return parse_number(self.current)
        return calculate(self.previous, self.operator, parse_number(self.current))

    def type_text(self, raw: str) -> Decimal:
        self.current = sanitize_number(raw)
        if self.has_pending_operator:
            self.show_expression = True
            self._report(self.pending_result())
        else:
            self.show_expression = False
            self._report(parse_number(self.current))
        return self.value

    def press_operator(self, op: str) -> None:
        op = OPERATOR_ALIASES.get(op, op)
        if op not in OPERATORS:
            raise ValueError(f'Unsupported operator: {op}')

        if self.has_pending_operator and self.current:
            result = self.pending_result()
            self.previous = result
            self._report(result)
        else:
            self.previous = parse_number(self.current)
        self.current = ''
        self.operator = op
        self.show_expression = False

    def press_equals(self) -> Decimal:
        if self.has_pending_operator:
            result = self.pending_result()
            self.current = format_number(result)
            self.previous = None
            self.operator = None
            self.show_expression = False
            self._report(result)
        return self.value

    def clear(self) -> None:
        self.current = ''
        self.previous = None
        self.operator = None
        self.show_expression = False
        self._report(ZERO)

    def expression_display(self) -> ExpressionPreview | None:
        if not self.has_pending_operator:
            return None
        return ExpressionPreview(
            expression=f'{format_number(self.previous)}{DISPLAY_SYMBOLS[self.operator]}{self.current or "0"}=',
            result=format_money(self.pending_result()),
        )


def run_keystrokes(text: str) -> CalculatorInput:
    """Feed a typed expression such as ``10+5×2`` through a fresh calculator, stopping short of ``=``."""
    calc = CalculatorInput()
    buffer = ''
    for char in text:
        op = OPERATOR_ALIASES.get(char, char)
        if op in OPERATORS:
            if buffer:
                calc.type_text(buffer)
            calc.press_operator(op)
            buffer = ''
        elif char == '=':
            break
        elif not char.isspace():
            buffer += char
    if buffer:
        calc.type_text(buffer)
    return calc


def evaluate_expression(text: str) -> Decimal:
    calc = run_keystrokes(text)
    return calc.press_equals()


def preview_expression(text: str) -> ExpressionPreview:
    calc = run_keystrokes(text)
    preview = calc.expression_display()
    if preview is not None:
        return preview
    return ExpressionPreview(expression=calc.current, result=format_money(calc.value))


def parse_amount(raw: str | None, *, error: str = 'Please enter a valid amount') -> Decimal:
    value = evaluate_expression(str(raw or ''))
    if abs(value) >= MAX_AMOUNT:
        raise ValueError('Please enter a valid amount')
    amount = value.quantize(CENT, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise ValueError(error)
    if amount >= MAX_AMOUNT:
        raise ValueError('Please enter a valid amount')
    return amount
