"""Tests for formula parser utility."""

import pytest
from app.core.formula_parser import FormulaParser, FormulaError, extract_variables, validate_formula


class TestFormulaParser:
    """Test safe formula parsing and evaluation."""

    @pytest.fixture
    def parser(self):
        """Create a formula parser instance."""
        return FormulaParser()

    def test_arithmetic(self, parser):
        """Test the four basic operators."""
        assert parser.evaluate("a + b", {"a": 5, "b": 3}) == 8
        assert parser.evaluate("a - b", {"a": 10, "b": 3}) == 7
        assert parser.evaluate("a * b", {"a": 4, "b": 5}) == 20
        assert parser.evaluate("a / b", {"a": 20, "b": 4}) == 5

    def test_modulo_and_power(self, parser):
        assert parser.evaluate("a % b", {"a": 10, "b": 4}) == 2
        assert parser.evaluate("a ** 2", {"a": 3}) == 9

    def test_complex_formula(self, parser):
        """Test complex formula with multiple operations."""
        result = parser.evaluate(
            "(conversions / visitors) * 100",
            {"conversions": 50, "visitors": 1000},
        )
        assert result == 5.0

    def test_negative_numbers(self, parser):
        """Test unary minus and negative inputs."""
        assert parser.evaluate("a + b", {"a": -5, "b": 10}) == 5
        assert parser.evaluate("-a", {"a": 3}) == -3

    def test_result_is_float(self, parser):
        result = parser.evaluate("a", {"a": 42})
        assert result == 42
        assert isinstance(result, float)

    def test_division_by_zero(self, parser):
        """Test that division by zero raises an error."""
        with pytest.raises(FormulaError, match="Division by zero"):
            parser.evaluate("a / b", {"a": 10, "b": 0})

    def test_missing_variable(self, parser):
        """Test formula with missing variable."""
        with pytest.raises(FormulaError, match="c"):
            parser.evaluate("a + b + c", {"a": 1, "b": 2})

    def test_exponent_limit(self, parser):
        with pytest.raises(FormulaError, match="Exponent too large"):
            parser.evaluate("a ** 1000", {"a": 2})

    def test_aggregates_over_lists(self, parser):
        """Multi-valued fields can be summarised with aggregate functions."""
        values = {"deals": [100, 200, 300]}
        assert parser.evaluate("sum(deals)", values) == 600
        assert parser.evaluate("avg(deals)", values) == 200
        assert parser.evaluate("min(deals)", values) == 100
        assert parser.evaluate("max(deals)", values) == 300
        assert parser.evaluate("count(deals)", values) == 3

    def test_aggregates_mix_scalars_and_lists(self, parser):
        assert parser.evaluate("sum(a, b)", {"a": [1, 2], "b": 3}) == 6

    def test_list_outside_aggregate_rejected(self, parser):
        with pytest.raises(FormulaError, match="multiple values"):
            parser.evaluate("deals * 2", {"deals": [1, 2]})

    def test_scalar_functions(self, parser):
        assert parser.evaluate("abs(a)", {"a": -4}) == 4
        assert parser.evaluate("round(a, 1)", {"a": 2.345}) == 2.3
        assert parser.evaluate("sqrt(a)", {"a": 16}) == 4
        assert parser.evaluate("floor(a) + ceil(a)", {"a": 1.5}) == 3

    def test_sqrt_of_negative(self, parser):
        with pytest.raises(FormulaError, match="negative"):
            parser.evaluate("sqrt(a)", {"a": -1})

    def test_extract_variables(self, parser):
        """Variables come back once each, in order of first use, without function names."""
        variables = parser.extract_variables("sum(conversions) / visitors * 100 + conversions")
        assert variables == ["conversions", "visitors"]

    def test_extract_variables_from_broken_formula(self):
        assert extract_variables("(revenue + cost") == ["revenue", "cost"]

    def test_validate_formula_valid(self, parser):
        """Test formula validation with valid formula."""
        is_valid, error, variables = parser.validate_formula("(a + b) / c")
        assert is_valid is True
        assert error == ""
        assert variables == ["a", "b", "c"]

    def test_validate_formula_invalid(self, parser):
        """Test formula validation with invalid formula."""
        is_valid, error, variables = parser.validate_formula("(a + b")
        assert is_valid is False
        assert error.startswith("Syntax error")

    def test_validate_formula_requires_variable(self, parser):
        is_valid, error, _ = parser.validate_formula("1 + 2")
        assert is_valid is False
        assert "at least one variable" in error

    def test_validate_formula_empty(self, parser):
        is_valid, error, _ = parser.validate_formula("   ")
        assert is_valid is False
        assert error == "Formula cannot be empty"

    def test_validate_formula_allowed_variables(self, parser):
        is_valid, error, variables = parser.validate_formula("revenue / headcount", ["revenue"])
        assert is_valid is False
        assert error == "Unknown variables: headcount"
        assert variables == ["revenue", "headcount"]

    def test_dangerous_code_blocked(self, parser):
        """Test that dangerous code is blocked."""
        dangerous_formulas = [
            "__import__('os').system('ls')",
            "eval('1+1')",
            "exec('print(1)')",
            "open('/etc/passwd').read()",
            "a.__class__",
            "a[0]",
            "round(a, ndigits=2)",
        ]

        for formula in dangerous_formulas:
            with pytest.raises(FormulaError):
                parser.evaluate(formula, {"a": 1})

    def test_string_constant_rejected(self, parser):
        is_valid, error, _ = parser.validate_formula("a + 'x'")
        assert is_valid is False
        assert "numeric constants" in error

    def test_alias_round_trip(self, parser):
        undeclared, unused = parser.check_alias_round_trip("revenue / employees", ["revenue", "cost"])
        assert undeclared == ["employees"]
        assert unused == ["cost"]

        assert parser.check_alias_round_trip("a + b", ["b", "a"]) == ([], [])

    def test_validate_formula_function(self):
        """Test the standalone validate_formula function."""
        is_valid, error, variables = validate_formula("revenue / total_users")
        assert is_valid is True
        assert "revenue" in variables
        assert "total_users" in variables
