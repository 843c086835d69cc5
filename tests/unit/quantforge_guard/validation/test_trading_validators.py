"""Tests for the trading domain validators."""

from __future__ import annotations

from typing import Any

import pytest

from quantforge_guard.validation.trading_validators import (
    check_chat_message,
    check_generated_code,
    validate_api_key,
    validate_backtest_settings,
    validate_chat_message,
    validate_generated_code,
    validate_robot_name,
    validate_strategy_params,
    validate_symbol,
)


def make_params(**overrides: Any) -> dict[str, Any]:
    params: dict[str, Any] = {
        "timeframe": "H1",
        "symbol": "EURUSD",
        "riskPercent": 2,
        "stopLoss": 50,
        "takeProfit": 100,
        "magicNumber": 12345,
        "customInputs": [
            {"name": "fast_period", "type": "int", "value": "12"},
            {"name": "use_filter", "type": "bool", "value": "true"},
        ],
    }
    params.update(overrides)
    return params


def fields_of(result: Any) -> list[str]:
    return [error.field for error in result.errors]


class TestStrategyParams:
    def test_valid_params(self) -> None:
        result = validate_strategy_params(make_params())
        assert result.is_valid
        assert result.errors == ()

    def test_single_out_of_range_field_yields_one_error(self) -> None:
        result = validate_strategy_params(make_params(riskPercent=150))

        assert len(result.errors) == 1
        assert result.errors[0].field == "riskPercent"
        assert result.errors[0].message == "Risk percent must be between 0.01 and 100"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"riskPercent": 0.01},
            {"riskPercent": 100},
            {"stopLoss": 1},
            {"stopLoss": 1000},
            {"takeProfit": 1000},
            {"magicNumber": 1},
            {"magicNumber": 999_999},
        ],
    )
    def test_boundaries_are_inclusive(self, overrides: dict[str, Any]) -> None:
        assert validate_strategy_params(make_params(**overrides)).is_valid

    @pytest.mark.parametrize(
        ("overrides", "field"),
        [
            ({"magicNumber": 1_000_000}, "magicNumber"),
            ({"stopLoss": 0}, "stopLoss"),
            ({"takeProfit": 1001}, "takeProfit"),
            ({"timeframe": "H2"}, "timeframe"),
            ({"riskPercent": "2"}, "riskPercent"),
        ],
    )
    def test_invalid_fields(self, overrides: dict[str, Any], field: str) -> None:
        assert fields_of(validate_strategy_params(make_params(**overrides))) == [field]

    def test_independent_fields_are_all_reported(self) -> None:
        result = validate_strategy_params(make_params(riskPercent=0, stopLoss=0))
        assert sorted(fields_of(result)) == ["riskPercent", "stopLoss"]

    def test_missing_symbol(self) -> None:
        params = make_params()
        del params["symbol"]

        result = validate_strategy_params(params)

        assert result.errors[0].message == "Symbol is required"

    def test_non_mapping_payload(self) -> None:
        result = validate_strategy_params(["not", "a", "dict"])  # type: ignore[arg-type]
        assert fields_of(result) == ["strategyParams"]


class TestCustomInputs:
    def test_each_repeated_name_is_reported(self) -> None:
        inputs = [{"name": name, "type": "string", "value": "x"} for name in "aaabb"]

        result = validate_strategy_params(make_params(customInputs=inputs))

        duplicates = [e for e in result.errors if "Duplicate input name" in e.message]
        assert len(duplicates) == 3
        assert [e.field for e in duplicates] == [
            "customInputs[1].name",
            "customInputs[2].name",
            "customInputs[4].name",
        ]
        assert duplicates[0].message == 'Duplicate input name: "a"'

    @pytest.mark.parametrize(
        ("input_type", "value", "message"),
        [
            ("int", "abc", "Invalid integer value"),
            ("int", "2147483648", "Invalid integer value"),
            ("int", "1.5", "Invalid integer value"),
            ("double", "nan", "Invalid number value"),
            ("double", "inf", "Invalid number value"),
            ("double", "abc", "Invalid number value"),
            ("bool", "yes", 'Boolean value must be "true" or "false"'),
        ],
    )
    def test_invalid_values(self, input_type: str, value: str, message: str) -> None:
        inputs = [{"name": "p", "type": input_type, "value": value}]

        result = validate_strategy_params(make_params(customInputs=inputs))

        assert len(result.errors) == 1
        assert result.errors[0].field == "customInputs[0].value"
        assert result.errors[0].message == message

    @pytest.mark.parametrize(
        ("input_type", "value"),
        [
            ("int", "-2147483648"),
            ("int", "2147483647"),
            ("int", 42),
            ("double", "1.5"),
            ("double", 3),
            ("bool", "false"),
            ("bool", True),
            ("string", "anything"),
        ],
    )
    def test_valid_values(self, input_type: str, value: Any) -> None:
        inputs = [{"name": "p", "type": input_type, "value": value}]
        assert validate_strategy_params(make_params(customInputs=inputs)).is_valid

    def test_unknown_type(self) -> None:
        inputs = [{"name": "p", "type": "float", "value": "1"}]
        result = validate_strategy_params(make_params(customInputs=inputs))
        assert fields_of(result) == ["customInputs[0].type"]

    def test_invalid_name(self) -> None:
        inputs = [{"name": "1abc", "type": "string", "value": "x"}]
        result = validate_strategy_params(make_params(customInputs=inputs))
        assert fields_of(result) == ["customInputs[0].name"]

    def test_shape_errors(self) -> None:
        assert fields_of(validate_strategy_params(make_params(customInputs="abc"))) == [
            "customInputs"
        ]
        assert fields_of(validate_strategy_params(make_params(customInputs=[1]))) == [
            "customInputs[0]"
        ]


class TestBacktestSettings:
    def test_valid(self) -> None:
        settings = {"initialDeposit": 10_000, "days": 30, "leverage": 100}
        assert validate_backtest_settings(settings).is_valid

    def test_boundaries(self) -> None:
        low = {"initialDeposit": 100, "days": 1, "leverage": 1}
        high = {"initialDeposit": 10_000_000, "days": 365, "leverage": 1000}
        assert validate_backtest_settings(low).is_valid
        assert validate_backtest_settings(high).is_valid

    def test_deposit_below_minimum(self) -> None:
        result = validate_backtest_settings({"initialDeposit": 99, "days": 30, "leverage": 100})
        assert result.errors[0].message == "Initial deposit must be between 100 and 10000000"

    def test_all_fields_are_checked(self) -> None:
        result = validate_backtest_settings({"initialDeposit": 500, "days": 366, "leverage": 0})
        assert fields_of(result) == ["days", "leverage"]

    def test_missing_duration(self) -> None:
        result = validate_backtest_settings({"initialDeposit": 500, "leverage": 10})
        assert result.errors[0].message == "Duration is required"


class TestRobotName:
    @pytest.mark.parametrize(
        ("name", "message"),
        [
            ("", "Robot name is required"),
            ("ab", "Robot name must be at least 3 characters long"),
            ("a" * 101, "Robot name must not exceed 100 characters"),
        ],
    )
    def test_invalid(self, name: str, message: str) -> None:
        assert validate_robot_name(name).errors[0].message == message

    @pytest.mark.parametrize("name", ["abc", "a" * 100, "RSI Scalper v2"])
    def test_valid(self, name: str) -> None:
        assert validate_robot_name(name).is_valid


class TestSymbol:
    @pytest.mark.parametrize("symbol", ["EURUSD", "EUR/USD", "XAUUSD", "BTCUSDT", "BTC-USD"])
    def test_valid_formats(self, symbol: str) -> None:
        assert validate_symbol(symbol).is_valid

    def test_normalizes_case_and_whitespace(self) -> None:
        result = validate_symbol("  eurusd ")
        assert result.is_valid
        assert result.sanitized_value == "EURUSD"

    @pytest.mark.parametrize(
        ("symbol", "message"),
        [
            ("", "Symbol is required"),
            ("E1", "Invalid symbol format. Use formats like: EURUSD, EUR/USD, XAUUSD, BTCUSDT"),
            ("INVALID", "Invalid symbol for trading"),
            (123, "Symbol must be a string"),
        ],
    )
    def test_invalid(self, symbol: Any, message: str) -> None:
        assert validate_symbol(symbol).errors[0].message == message


class TestApiKey:
    VALID = "sk-proj-AbCdEf0123456789XyZ"

    @pytest.mark.parametrize(
        ("key", "message"),
        [
            ("", "API key is required"),
            ("short", "API key appears to be too short"),
            ("x" * 501, "API key is too long"),
            ("abc def ghi jkl mno pqr", "Invalid API key format"),
            ("your-api-key-here-1234567", "Please use a valid API key, not a placeholder"),
        ],
    )
    def test_invalid_keys(self, key: str, message: str) -> None:
        result = validate_api_key(key)
        assert result.errors[0].field == "apiKey"
        assert result.errors[0].message == message

    def test_valid_openai_key(self) -> None:
        result = validate_api_key(self.VALID, "openai")
        assert result.is_valid
        assert result.warnings == ()

    def test_openai_prefix_required(self) -> None:
        result = validate_api_key("AbCdEf0123456789XyZwVu", "openai")
        assert result.errors[0].message == 'OpenAI API key must start with "sk-"'

    def test_anthropic_prefix_only_warns(self) -> None:
        result = validate_api_key(self.VALID, "anthropic")
        assert result.is_valid
        assert len(result.warnings) == 1

    def test_gemini_has_no_prefix_rule(self) -> None:
        result = validate_api_key("AIzaSyAbCdEf0123456789XyZ", "gemini")
        assert result.is_valid
        assert result.warnings == ()

    def test_unknown_provider_warns(self) -> None:
        result = validate_api_key(self.VALID, "mistral")
        assert result.is_valid
        assert result.warnings == ("Unknown provider: mistral",)

    @pytest.mark.parametrize("provider", [5, ["openai"], {"name": "openai"}])
    def test_non_string_provider_is_a_field_error(self, provider: object) -> None:
        result = validate_api_key(self.VALID, provider)

        assert [(e.field, e.message) for e in result.errors] == [
            ("provider", "Provider must be a string")
        ]

    def test_key_error_is_reported_before_provider_error(self) -> None:
        result = validate_api_key("short", 5)
        assert [e.field for e in result.errors] == ["apiKey", "provider"]


class TestChatMessages:
    def test_empty(self) -> None:
        assert check_chat_message("").errors[0].message == "Message cannot be empty"

    def test_too_long(self) -> None:
        result = check_chat_message("a" * 11, max_length=10)
        assert result.errors[0].message == "Message is too long (max 10 characters)"
        default = check_chat_message("a" * 10_001)
        assert default.errors[0].message == "Message is too long (max 10,000 characters)"

    def test_xss_is_rejected_with_generic_message(self) -> None:
        result = validate_chat_message("<script>alert(1)</script>")

        assert len(result.errors) == 1
        assert result.errors[0].field == "message"
        assert result.errors[0].message == "Message contains potentially unsafe content"

    def test_benign_message(self) -> None:
        result = validate_chat_message("Build a moving average crossover robot for EURUSD")
        assert result.is_valid
        assert result.warnings == ()


class TestGeneratedCode:
    CODE = 'void OnTick()\n{\n    if(a<b && one == 2) Print("tick");\n}\n'

    def test_empty(self) -> None:
        assert check_generated_code("").errors[0].message == "Code cannot be empty"

    def test_benign_code(self) -> None:
        result = validate_generated_code(self.CODE)
        assert result.is_valid
        assert result.warnings == ()

    def test_dangerous_call_is_rejected(self) -> None:
        result = validate_generated_code(self.CODE + 'int h = FileOpen("x.csv", FILE_WRITE);\n')
        assert result.errors[0].message == "Code contains potentially unsafe content"

    def test_missing_entry_point_warns(self) -> None:
        result = validate_generated_code("int helper() { return 1; }")
        assert result.is_valid
        assert len(result.warnings) == 1

    def test_very_large_code_warns(self) -> None:
        result = check_generated_code("x" * 1_000_001)
        assert result.is_valid
        assert len(result.warnings) == 1
