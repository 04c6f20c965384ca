"""
Safe formula parser for KPI calculations.
Supports arithmetic and a small set of aggregation functions without using eval().
"""
import ast
import math
import operator
import re
from typing import Callable, Iterable, Optional, Union

from app.core.exceptions import FormulaError


Number = Union[int, float]
Value = Union[Number, list]

# Supported operators
OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
    ast.Mod: operator.mod,
}

# Pattern used to recover variable names from formulas that fail to parse
VARIABLE_PATTERN = re.compile(r'\b([a-zA-Z_][a-zA-Z0-9_]*)\b')

# Reserved keywords that shouldn't be treated as variables
RESERVED_KEYWORDS = {'True', 'False', 'None', 'and', 'or', 'not'}

MAX_EXPONENT = 100


def _flatten(args: Iterable[Value]) -> list[float]:
    flat = []
    for arg in args:
        if isinstance(arg, list):
            flat.extend(arg)
        else:
            flat.append(arg)
    return flat


def _sum(*args: Value) -> float:
    return float(sum(_flatten(args)))


def _avg(*args: Value) -> float:
    values = _flatten(args)
    return sum(values) / len(values) if values else 0.0


def _min(*args: Value) -> float:
    values = _flatten(args)
    if not values:
        raise FormulaError("min() of an empty list")
    return min(values)


def _max(*args: Value) -> float:
    values = _flatten(args)
    if not values:
        raise FormulaError("max() of an empty list")
    return max(values)


def _count(*args: Value) -> int:
    return len(_flatten(args))


def _sqrt(x: Number) -> float:
    if x < 0:
        raise FormulaError("sqrt() of a negative number")
    return math.sqrt(x)


def _round(x: Number, digits: Number = 0) -> float:
    return round(x, int(digits))


# Aggregations accept lists (multi-valued data fields) and scalars
AGGREGATE_FUNCTIONS: dict[str, Callable[..., Number]] = {
    'sum': _sum,
    'avg': _avg,
    'min': _min,
    'max': _max,
    'count': _count,
}

# Scalar helpers take plain numbers only
SCALAR_FUNCTIONS: dict[str, Callable[..., Number]] = {
    'abs': abs,
    'round': _round,
    'sqrt': _sqrt,
    'floor': math.floor,
    'ceil': math.ceil,
}

FUNCTIONS = {**AGGREGATE_FUNCTIONS, **SCALAR_FUNCTIONS}


class FormulaParser:
    """
    Safe formula parser that validates and evaluates mathematical expressions.

    Supports:
    - Basic arithmetic: +, -, *, /, **, %
    - Parentheses for grouping
    - Variable names (identifiers)
    - Numeric literals (int and float)
    - sum, avg, min, max, count over single values or lists of values
    - abs, round, sqrt, floor, ceil over single values

    Does NOT support:
    - Any other function calls
    - Attribute access
    - Subscript operations
    - Any Python builtins
    """

    @staticmethod
    def extract_variables(formula: str) -> list[str]:
        """
        Extract all variable names from a formula string, in order of first use.

        Args:
            formula: The formula string (e.g., "revenue / deals_closed")

        Returns:
            List of unique variable names found in the formula
        """
        try:
            tree = ast.parse(formula, mode='eval')
        except SyntaxError:
            matches = VARIABLE_PATTERN.findall(formula)
            return list(dict.fromkeys(
                var for var in matches
                if var not in RESERVED_KEYWORDS and var not in FUNCTIONS
            ))

        names = []
        FormulaParser._collect_names(tree.body, names)
        return list(dict.fromkeys(names))

    @staticmethod
    def _collect_names(node: ast.AST, names: list[str]) -> None:
        if isinstance(node, ast.Name):
            if node.id not in FUNCTIONS and node.id not in RESERVED_KEYWORDS:
                names.append(node.id)
            return
        if isinstance(node, ast.Call):
            for arg in node.args:
                FormulaParser._collect_names(arg, names)
            return
        for child in ast.iter_child_nodes(node):
            FormulaParser._collect_names(child, names)

    @staticmethod
    def validate_formula(
        formula: str,
        allowed_variables: Optional[Iterable[str]] = None,
    ) -> tuple[bool, str, list[str]]:
        """
        Validate a formula string for syntax and safety.

        Args:
            formula: The formula string to validate
            allowed_variables: If given, every variable must be one of these

        Returns:
            Tuple of (is_valid, error_message, variables)
            - is_valid: True if formula is valid
            - error_message: Empty string if valid, error description if not
            - variables: List of variable names referenced by the formula
        """
        if not formula or not formula.strip():
            return False, "Formula cannot be empty", []

        try:
            tree = ast.parse(formula.strip(), mode='eval')
            FormulaParser._validate_ast(tree.body)
        except SyntaxError as e:
            return False, f"Syntax error: {e.msg}", []
        except FormulaError as e:
            return False, e.detail, []

        variables = FormulaParser.extract_variables(formula.strip())
        if not variables:
            return False, "Formula must contain at least one variable", []

        if allowed_variables is not None:
            allowed = set(allowed_variables)
            unknown = [v for v in variables if v not in allowed]
            if unknown:
                return False, f"Unknown variables: {', '.join(unknown)}", variables

        return True, "", variables

    @staticmethod
    def _validate_ast(node: ast.AST) -> None:
        """
        Recursively validate AST nodes to ensure only safe operations.

        Raises:
            FormulaError: If an unsafe operation is detected
        """
        if isinstance(node, ast.BinOp):
            if type(node.op) not in OPERATORS:
                raise FormulaError(f"Unsupported operator: {type(node.op).__name__}")
            FormulaParser._validate_ast(node.left)
            FormulaParser._validate_ast(node.right)

        elif isinstance(node, ast.UnaryOp):
            if type(node.op) not in OPERATORS:
                raise FormulaError(f"Unsupported unary operator: {type(node.op).__name__}")
            FormulaParser._validate_ast(node.operand)

        elif isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
                raise FormulaError(f"Only numeric constants are allowed, got: {type(node.value).__name__}")

        elif isinstance(node, ast.Name):
            if node.id in RESERVED_KEYWORDS:
                raise FormulaError(f"Reserved keyword cannot be used as variable: {node.id}")
            if node.id in FUNCTIONS:
                raise FormulaError(f"Function '{node.id}' must be called with arguments")

        elif isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS:
                name = node.func.id if isinstance(node.func, ast.Name) else type(node.func).__name__
                raise FormulaError(f"Unknown function: {name}")
            if node.keywords:
                raise FormulaError("Keyword arguments are not allowed in formulas")
            if not node.args:
                raise FormulaError(f"Function '{node.func.id}' requires at least one argument")
            for arg in node.args:
                FormulaParser._validate_ast(arg)

        elif isinstance(node, ast.Attribute):
            raise FormulaError("Attribute access is not allowed in formulas")

        elif isinstance(node, ast.Subscript):
            raise FormulaError("Subscript operations are not allowed in formulas")

        else:
            raise FormulaError(f"Unsupported expression type: {type(node).__name__}")

    @staticmethod
    def evaluate(formula: str, values: dict[str, Value]) -> float:
        """
        Safely evaluate a formula with given variable values.

        Args:
            formula: The formula string
            values: Mapping of variable names to a number or a list of numbers

        Returns:
            The calculated result

        Raises:
            FormulaError: If validation or evaluation fails, or the result is
                not a finite number
        """
        is_valid, error, variables = FormulaParser.validate_formula(formula)
        if not is_valid:
            raise FormulaError(error)

        missing = [v for v in variables if v not in values]
        if missing:
            raise FormulaError(f"Missing values for variables: {', '.join(missing)}")

        try:
            tree = ast.parse(formula.strip(), mode='eval')
            result = FormulaParser._evaluate_ast(tree.body, values)
            if isinstance(result, bool) or not isinstance(result, (int, float)):
                raise FormulaError("Formula did not return a number")
            result = float(result)
        except ZeroDivisionError:
            raise FormulaError("Division by zero")
        except OverflowError:
            raise FormulaError("Result is infinite (numeric overflow)")
        except FormulaError:
            raise
        except (ArithmeticError, TypeError, ValueError) as e:
            raise FormulaError(f"Evaluation error: {e}")

        if math.isnan(result):
            raise FormulaError("Result is NaN (not a number)")
        if math.isinf(result):
            raise FormulaError("Result is infinite (division by zero?)")

        return result

    @staticmethod
    def _evaluate_ast(node: ast.AST, values: dict[str, Value], in_aggregate: bool = False) -> Value:
        """
        Recursively evaluate AST nodes with given variable values.
        Lists are only allowed as direct arguments of aggregation functions.
        """
        if isinstance(node, ast.BinOp):
            left = FormulaParser._scalar(FormulaParser._evaluate_ast(node.left, values))
            right = FormulaParser._scalar(FormulaParser._evaluate_ast(node.right, values))
            if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
                raise FormulaError(f"Exponent too large (max {MAX_EXPONENT})")
            return OPERATORS[type(node.op)](left, right)

        elif isinstance(node, ast.UnaryOp):
            operand = FormulaParser._scalar(FormulaParser._evaluate_ast(node.operand, values))
            return OPERATORS[type(node.op)](operand)

        elif isinstance(node, ast.Constant):
            return node.value

        elif isinstance(node, ast.Name):
            value = values[node.id]
            if isinstance(value, list) and not in_aggregate:
                raise FormulaError(
                    f"Variable '{node.id}' holds multiple values; "
                    f"wrap it in sum, avg, min, max or count"
                )
            return value

        elif isinstance(node, ast.Call):
            name = node.func.id
            if name in AGGREGATE_FUNCTIONS:
                args = [FormulaParser._evaluate_ast(arg, values, in_aggregate=True) for arg in node.args]
            else:
                args = [FormulaParser._scalar(FormulaParser._evaluate_ast(arg, values)) for arg in node.args]
            return FUNCTIONS[name](*args)

        raise FormulaError(f"Cannot evaluate: {type(node).__name__}")

    @staticmethod
    def _scalar(value: Value) -> Number:
        if isinstance(value, list):
            raise FormulaError("A list of values can only be used inside sum, avg, min, max or count")
        return value

    @staticmethod
    def check_alias_round_trip(formula: str, aliases: Iterable[str]) -> tuple[list[str], list[str]]:
        """
        Compare the formula's variables with the declared source aliases.

        Returns:
            Tuple of (undeclared_variables, unused_aliases). Both empty means
            every variable is bound to a source and every source is used.
        """
        aliases = list(aliases)
        variables = FormulaParser.extract_variables(formula)
        undeclared = [v for v in variables if v not in aliases]
        unused = [a for a in aliases if a not in variables]
        return undeclared, unused


# Convenience functions
def validate_formula(
    formula: str,
    allowed_variables: Optional[Iterable[str]] = None,
) -> tuple[bool, str, list[str]]:
    """Validate a formula string."""
    return FormulaParser.validate_formula(formula, allowed_variables)


def evaluate_formula(formula: str, values: dict[str, Value]) -> float:
    """Evaluate a formula with given values."""
    return FormulaParser.evaluate(formula, values)


def extract_variables(formula: str) -> list[str]:
    """Extract variable names from a formula."""
    return FormulaParser.extract_variables(formula)
