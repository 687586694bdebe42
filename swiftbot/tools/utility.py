"""Built-in utility tools: calculator, date/time and unit conversion."""

import ast
import logging
import math
import operator
import re
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field

from swiftbot.tools.base import ToolParams, ToolResult
from swiftbot.tools.registry import registry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# calculator
# ---------------------------------------------------------------------------

SAFE_EXPRESSION = re.compile(r"^[0-9+\-*/().,%\s^]+$")
MAX_EXPRESSION_LENGTH = 300
MAX_EXPONENT = 1000

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPS = {ast.UAdd: operator.pos, ast.USub: operator.neg}


def _eval_node(node: ast.AST) -> float:
    if isinstance(node, ast.Expression):
        return _eval_node(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, int | float):
        return node.value
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise ValueError("Exponent is too large.")
        return _BINARY_OPS[type(node.op)](left, right)
    raise ValueError("Expression contains unsupported syntax.")


def evaluate_expression(expression: str) -> float:
    """Evaluate an arithmetic expression without eval().

    ``^`` is treated as exponentiation and commas as thousands separators.
    """
    trimmed = expression.strip()
    if not trimmed:
        raise ValueError("Expression is required.")
    if len(trimmed) > MAX_EXPRESSION_LENGTH:
        raise ValueError("Expression is too long.")
    if not SAFE_EXPRESSION.match(trimmed):
        raise ValueError("Expression contains unsupported characters.")

    normalized = trimmed.replace(",", "").replace("^", "**")
    try:
        tree = ast.parse(normalized, mode="eval")
    except SyntaxError as exc:
        raise ValueError("Expression is not valid arithmetic.") from exc
    try:
        result = _eval_node(tree)
    except ZeroDivisionError as exc:
        raise ValueError("Division by zero.") from exc
    except OverflowError as exc:
        raise ValueError("Expression did not produce a finite number.") from exc
    if isinstance(result, float) and not math.isfinite(result):
        raise ValueError("Expression did not produce a finite number.")
    return result


def format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return str(value)


class CalculatorParams(ToolParams):
    expression: str = Field(description="Arithmetic expression, e.g. (12*4)+3^2")


@registry.tool(
    name="calculator",
    description="Evaluate a math expression safely.",
    category="utility",
    params_model=CalculatorParams,
)
async def calculator(expression: str) -> ToolResult:
    try:
        result = evaluate_expression(expression)
    except ValueError as exc:
        return ToolResult(error=str(exc))
    return ToolResult(data={"expression": expression, "result": format_number(result)})


# ---------------------------------------------------------------------------
# date_time
# ---------------------------------------------------------------------------


class DateTimeParams(ToolParams):
    timezone: str = Field(
        default="UTC", description="IANA timezone, e.g. Asia/Kolkata or America/New_York"
    )


@registry.tool(
    name="date_time",
    description="Get the current date and time in a timezone.",
    category="utility",
    params_model=DateTimeParams,
)
async def date_time(timezone: str = "UTC") -> ToolResult:
    try:
        tz = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        return ToolResult(
            error="Invalid timezone. Use an IANA timezone like Asia/Kolkata or America/New_York."
        )
    now = datetime.now(tz)
    return ToolResult(
        data={
            "datetime": now.isoformat(),
            "formatted": now.strftime("%A, %B %d, %Y %I:%M:%S %p %Z"),
            "day_of_week": now.strftime("%A"),
            "timezone": timezone,
        }
    )


# ---------------------------------------------------------------------------
# unit_convert
# ---------------------------------------------------------------------------

# unit -> (kind, factor to the base unit of that kind)
LINEAR_UNITS: dict[str, tuple[str, float]] = {
    "m": ("length", 1),
    "meter": ("length", 1),
    "meters": ("length", 1),
    "km": ("length", 1000),
    "kilometer": ("length", 1000),
    "kilometers": ("length", 1000),
    "cm": ("length", 0.01),
    "mm": ("length", 0.001),
    "mi": ("length", 1609.344),
    "mile": ("length", 1609.344),
    "miles": ("length", 1609.344),
    "ft": ("length", 0.3048),
    "foot": ("length", 0.3048),
    "feet": ("length", 0.3048),
    "in": ("length", 0.0254),
    "inch": ("length", 0.0254),
    "inches": ("length", 0.0254),
    "kg": ("mass", 1),
    "g": ("mass", 0.001),
    "gram": ("mass", 0.001),
    "grams": ("mass", 0.001),
    "lb": ("mass", 0.45359237),
    "lbs": ("mass", 0.45359237),
    "pound": ("mass", 0.45359237),
    "pounds": ("mass", 0.45359237),
    "oz": ("mass", 0.028349523125),
    "s": ("time", 1),
    "sec": ("time", 1),
    "second": ("time", 1),
    "seconds": ("time", 1),
    "min": ("time", 60),
    "minute": ("time", 60),
    "minutes": ("time", 60),
    "h": ("time", 3600),
    "hr": ("time", 3600),
    "hour": ("time", 3600),
    "hours": ("time", 3600),
    "day": ("time", 86400),
    "days": ("time", 86400),
    "l": ("volume", 1),
    "liter": ("volume", 1),
    "liters": ("volume", 1),
    "ml": ("volume", 0.001),
    "gal": ("volume", 3.785411784),
}

_TEMPERATURE_ALIASES = {
    "c": "c",
    "celsius": "c",
    "f": "f",
    "fahrenheit": "f",
    "k": "k",
    "kelvin": "k",
}


def _to_celsius(value: float, unit: str) -> float:
    if unit == "f":
        return (value - 32) * 5 / 9
    if unit == "k":
        return value - 273.15
    return value


def _from_celsius(value: float, unit: str) -> float:
    if unit == "f":
        return value * 9 / 5 + 32
    if unit == "k":
        return value + 273.15
    return value


def convert_unit(value: float, from_unit: str, to_unit: str) -> float:
    """Convert between common length, mass, time, volume and temperature units."""
    source = "".join(from_unit.lower().split())
    target = "".join(to_unit.lower().split())

    if source in _TEMPERATURE_ALIASES or target in _TEMPERATURE_ALIASES:
        if source not in _TEMPERATURE_ALIASES or target not in _TEMPERATURE_ALIASES:
            raise ValueError("Temperature units can only be converted to temperature units.")
        celsius = _to_celsius(value, _TEMPERATURE_ALIASES[source])
        return _from_celsius(celsius, _TEMPERATURE_ALIASES[target])

    if source not in LINEAR_UNITS or target not in LINEAR_UNITS:
        raise ValueError("Unsupported unit. Use common units like m, km, ft, kg, lb, l, ml, min.")
    source_kind, source_factor = LINEAR_UNITS[source]
    target_kind, target_factor = LINEAR_UNITS[target]
    if source_kind != target_kind:
        raise ValueError(f"Cannot convert {source_kind} to {target_kind}.")
    return value * source_factor / target_factor


class UnitConvertParams(ToolParams):
    value: float = Field(description="Numeric value to convert")
    from_unit: str = Field(alias="from", description="Source unit, e.g. km")
    to_unit: str = Field(alias="to", description="Target unit, e.g. mi")


@registry.tool(
    name="unit_convert",
    description="Convert values between common units.",
    category="utility",
    params_model=UnitConvertParams,
)
async def unit_convert(value: float, from_unit: str, to_unit: str) -> ToolResult:
    try:
        result = convert_unit(value, from_unit, to_unit)
    except ValueError as exc:
        return ToolResult(error=str(exc))
    return ToolResult(
        data={"result": f"{format_number(value)} {from_unit} = {result:.6g} {to_unit}"}
    )
