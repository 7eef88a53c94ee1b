"""
Unit tests for SeriesParser.

Run: pytest tests/unit/test_data_parser.py -v
"""
import pytest

from app.exceptions import ParseError
from app.schemas.series import DataType
from app.services.data_parser import (
    SAMPLE_LABELS,
    SAMPLE_WARNING,
    SeriesParser,
    generate_labels,
    suggest_chart_type,
)


@pytest.fixture
def parser():
    return SeriesParser()


class TestScenarios:
    """End-to-end parses of typical user input."""

    def test_month_words_with_numbers(self, parser):
        result = parser.parse("Jan 100 Feb 200 Mar 150")

        assert result.success
        assert result.labels == ["Jan", "Feb", "Mar"]
        assert result.data == [100, 200, 150]
        assert result.metadata.format in ("natural", "numbers")
        assert parser.suggest_chart_type(result.labels, result.data).type == "line"

    def test_header_row_and_value_row(self, parser):
        result = parser.parse("A,B,C\n10,20,30")

        assert result.success
        assert result.labels == ["A", "B", "C"]
        assert result.data == [10, 20, 30]

    def test_empty_input_gives_sample_data(self, parser):
        result = parser.parse("")

        assert result.success is False
        assert result.labels == SAMPLE_LABELS
        assert len(result.data) == 4
        assert result.warning == SAMPLE_WARNING
        assert result.metadata.format == "sample"

    def test_json_labels_and_data_pass_through(self, parser):
        result = parser.parse('{"labels":["X","Y"],"data":[1,2]}')

        assert result.success
        assert result.labels == ["X", "Y"]
        assert result.data == [1, 2]
        assert result.title is None
        assert result.metadata.format == "json"


class TestFormats:
    """Per-format extraction."""

    def test_json_keeps_title(self, parser):
        result = parser.parse('{"labels":["X","Y"],"data":[1,2],"title":"Totals"}')
        assert result.title == "Totals"

    def test_json_list_of_objects(self, parser):
        result = parser.parse('[{"name": "A", "value": 3}, {"name": "B", "amount": 4}]')
        assert result.labels == ["A", "B"]
        assert result.data == [3, 4]

    def test_json_parallel_arrays(self, parser):
        result = parser.parse('[["A", "B"], [5, "6"]]')
        assert result.labels == ["A", "B"]
        assert result.data == [5, 6]

    def test_json_flat_object(self, parser):
        result = parser.parse('{"North": 10, "South": 20, "ok": true}')
        assert result.labels == ["North", "South"]
        assert result.data == [10, 20]

    def test_mixed_separator(self, parser):
        result = parser.parse("A,B,C / 10,20,30")
        assert result.labels == ["A", "B", "C"]
        assert result.data == [10, 20, 30]

    def test_pipe_slash(self, parser):
        result = parser.parse("Product | Sales / Apple 100 / Orange 200")
        assert result.labels == ["Apple", "Orange"]
        assert result.data == [100, 200]

    def test_csv_two_columns_is_row_per_pair(self, parser):
        result = parser.parse("Fruit;Count\nApple;5\nPear;7")
        assert result.metadata.format == "csv"
        assert result.labels == ["Apple", "Pear"]
        assert result.data == [5, 7]

    def test_csv_wide_header_reads_one_row(self, parser):
        result = parser.parse("Region;North;South;East\n2024;10;20;30\n2025;1;2;3")
        assert result.labels == ["North", "South", "East"]
        assert result.data == [10, 20, 30]
        assert result.title == "2024"

    def test_keyvalue_with_percent(self, parser):
        result = parser.parse("Chrome: 65%\nFirefox: 20%\nOther: 15%")
        assert result.labels == ["Chrome", "Firefox", "Other"]
        assert result.data == [65, 20, 15]
        assert result.is_percentage is True
        assert result.data_type == DataType.PERCENTAGE

    def test_table(self, parser):
        result = parser.parse("| Alice | 90\nBob | 85")
        assert result.labels == ["Alice", "Bob"]
        assert result.data == [90, 85]

    def test_prose(self, parser):
        result = parser.parse("Sales were 100 in January, 200 in February, and 150 in March")
        assert result.labels == ["January", "February", "March"]
        assert result.data == [100, 200, 150]

    def test_bare_numbers_get_generated_labels(self, parser):
        result = parser.parse("10 20 30")
        assert result.labels == ["Category A", "Category B", "Category C"]
        assert result.data == [10, 20, 30]


class TestFallback:
    """Parsing never raises and always returns an equal-length series."""

    @pytest.mark.parametrize("text", [
        "",
        "hello",
        "{broken json",
        "[1]",
        "just 5 and 7",
        "| a | b |",
        "1 2 3 4 5 6 7 8 9 10 11 12",
        "😀 10 😀 20",
    ])
    def test_total_over_messy_input(self, parser, text):
        result = parser.parse(text)
        assert len(result.labels) == len(result.data)
        assert len(result.data) >= 2

    def test_non_string_input(self, parser):
        result = parser.parse(None)
        assert result.success is False
        assert result.labels == SAMPLE_LABELS

    def test_unparsable_table_with_numbers_uses_fallback(self, parser):
        result = parser.parse("| a | b |\n4 9")
        assert result.success
        assert result.data == [4, 9]
        assert result.metadata.format == "fallback"
        assert result.metadata.confidence == 0.3
        assert result.title == "Data Visualization"

    def test_fallback_caps_points(self, parser):
        result = parser.parse("| a | b |\n1 2 3 4 5 6 7 8 9 10")
        assert len(result.data) == 8
        assert len(result.labels) == 8

    def test_parser_failure_is_caught(self, parser):
        def boom(text, hints):
            raise RuntimeError("broken")

        parser.parsers = {fmt: boom for fmt in parser.parsers}
        result = parser.parse("Apples: 10\nOranges: 20")

        assert result.success
        assert result.metadata.format == "fallback"
        assert result.data == [10, 20]


class TestInputWithoutNumbers:
    """Input that looks structured but holds no numbers gets the sample series."""

    @pytest.mark.parametrize("text", [
        "Name,City\nBob,Paris\nAnn,Rome",
        "Name,City,Country\nBob,Paris,France",
        "Wait ... then ...",
        "Apple: , Banana: .",
        "Hello , world , again ,",
        "Left = . Right = ,",
    ])
    def test_could_not_parse(self, parser, text):
        result = parser.parse(text)

        assert result.success is False
        assert result.labels == SAMPLE_LABELS
        assert result.warning == SAMPLE_WARNING
        assert 0.0 not in result.data

    def test_csv_without_numbers_raises_parse_error(self, parser):
        with pytest.raises(ParseError):
            parser._parse_csv("Name,City\nBob,Paris\nAnn,Rome", {"delimiter": ","})

        with pytest.raises(ParseError):
            parser._parse_csv("Name,City,Country\nBob,Paris,France", {"delimiter": ","})

    def test_csv_rows_without_value_are_skipped(self, parser):
        result = parser.parse("Fruit,Count\nApple,5\nPear,none\nPlum,7")

        assert result.metadata.format == "csv"
        assert result.labels == ["Apple", "Plum"]
        assert result.data == [5, 7]

    def test_punctuation_values_are_skipped(self, parser):
        result = parser.parse("Apples: 10\nPears: .\nPlums: 30")

        assert result.metadata.format == "keyvalue"
        assert result.labels == ["Apples", "Plums"]
        assert result.data == [10, 30]


class TestGenerateLabels:
    """Tests for topic-flavoured placeholder labels."""

    def test_quarters_for_small_time_series(self):
        assert generate_labels("sales by quarter", 3) == ["Q1", "Q2", "Q3"]

    def test_months_when_more_than_four(self):
        assert generate_labels("per month", 5) == ["Jan", "Feb", "Mar", "Apr", "May"]

    def test_products(self):
        assert generate_labels("product sales", 2) == ["Product 1", "Product 2"]

    def test_regions_overflow(self):
        labels = generate_labels("by region", 8)
        assert labels[:2] == ["North", "South"]
        assert labels[6:] == ["Region 7", "Region 8"]

    def test_always_exact_count(self):
        for count in (0, 1, 4, 13):
            assert len(generate_labels("anything", count)) == count


class TestSuggestChartType:
    """First matching rule wins."""

    def test_time_labels_give_line(self):
        assert suggest_chart_type(["Jan", "Feb"], [1, 2]).type == "line"

    def test_percentages_give_doughnut(self):
        suggestion = suggest_chart_type(["A", "B", "C"], [50, 30, 20])
        assert suggestion.type == "doughnut"
        assert suggestion.reason == "Percentage distribution"

    def test_fractions_give_doughnut(self):
        assert suggest_chart_type(["A", "B"], [0.2, 0.4]).type == "doughnut"

    def test_few_categories_give_pie(self):
        assert suggest_chart_type(["A", "B", "C"], [10, 20, 30]).type == "pie"

    def test_negative_values_skip_pie(self):
        assert suggest_chart_type(["A", "B"], [-10, 20]).type == "bar"

    def test_many_points_give_line(self):
        labels = [f"P{i}" for i in range(11)]
        assert suggest_chart_type(labels, [i * 10 for i in range(11)]).type == "line"

    def test_default_is_bar(self):
        labels = ["A", "B", "C", "D", "E"]
        assert suggest_chart_type(labels, [10, 20, 30, 40, 50]).type == "bar"
