"""
Tests for bookkeeping.analysis.parser — turning model output into AnalysisResult.
"""

import json

import pytest

from bookkeeping.analysis.parser import parse_analysis_response


GOOD_RESPONSE = {
    "documentType": "bank_statement",
    "transactions": [
        {"date": "2024-03-01", "description": "Deposit - client", "amount": 50000, "type": "credit"},
        {"date": "2024-03-05", "description": "MERALCO", "amount": 4500.25, "type": "debit"},
    ],
    "summary": "BPI checking statement for March 2024.",
    "totals": {"totalDebits": 4500.25, "totalCredits": 50000, "transactionCount": 2},
    "plStatement": {
        "totalRevenue": 50000,
        "totalExpenses": 4500.25,
        "netIncome": 45499.75,
        "categories": {"Services": 50000, "Utilities": 4500.25},
    },
    "insights": ["Revenue is concentrated in one client."],
}


class TestParseSuccess:
    def test_plain_json(self):
        raw = json.dumps(GOOD_RESPONSE)
        result = parse_analysis_response(raw, model="m", usage={"total_tokens": 10})

        assert result.parse_error is None
        assert result.document_type == "bank_statement"
        assert len(result.transactions) == 2
        assert result.pl_statement.total_revenue == 50000
        assert result.pl_statement.categories["Utilities"] == 4500.25
        assert result.totals.transaction_count == 2
        assert result.summary.startswith("BPI")
        assert result.insights == ["Revenue is concentrated in one client."]
        assert result.raw_response == raw
        assert result.model == "m"
        assert result.usage == {"total_tokens": 10}

    def test_json_inside_prose_and_fences(self):
        raw = "Here is the analysis:\n```json\n" + json.dumps(GOOD_RESPONSE) + "\n```\nLet me know!"
        result = parse_analysis_response(raw)
        assert result.parse_error is None
        assert len(result.transactions) == 2

    def test_trailing_commas_repaired(self):
        raw = '{"documentType": "receipt", "transactions": [{"description": "x", "amount": 1,},], "insights": [],}'
        result = parse_analysis_response(raw)
        assert result.parse_error is None
        assert result.document_type == "receipt"

    def test_negative_totals_become_magnitudes(self):
        raw = json.dumps({"plStatement": {"totalRevenue": 1000, "totalExpenses": -400}})
        pl = parse_analysis_response(raw).pl_statement
        assert pl.total_expenses == 400
        assert pl.net_income == 600

    def test_zero_pl(self):
        raw = json.dumps({"transactions": [], "plStatement": {"totalRevenue": 0, "totalExpenses": 0, "netIncome": 0}})
        result = parse_analysis_response(raw)
        assert result.pl_statement.is_zero

    def test_missing_pl_is_none(self):
        result = parse_analysis_response('{"transactions": []}')
        assert result.parse_error is None
        assert result.pl_statement is None

    def test_summary_object_becomes_totals(self):
        raw = json.dumps({"summary": {"totalDebits": 10, "totalCredits": 20, "transactionCount": 3}})
        result = parse_analysis_response(raw)
        assert result.summary is None
        assert result.totals.total_credits == 20

    def test_string_insight_wrapped(self):
        result = parse_analysis_response('{"insights": "Cash flow is positive."}')
        assert result.insights == ["Cash flow is positive."]

    def test_fallback_document_type(self):
        result = parse_analysis_response('{"transactions": []}', fallback_document_type="invoice")
        assert result.document_type == "invoice"

    def test_non_object_line_items_kept_for_ingestion(self):
        result = parse_analysis_response('{"transactions": ["garbled row", {"description": "ok"}]}')
        assert result.transactions[0] == {"_raw": "garbled row"}


class TestParseFailure:
    @pytest.mark.parametrize("raw", [
        "I'm sorry, I could not read this document.",
        "",
        None,
    ])
    def test_no_json(self, raw):
        result = parse_analysis_response(raw, fallback_document_type="bank_statement")
        assert result.parse_error
        assert result.transactions == []
        assert result.pl_statement is None
        assert result.document_type == "bank_statement"
        assert result.raw_response == (raw or "")

    def test_invalid_json_keeps_raw(self):
        raw = '{"transactions": [ {"amount": 12 '
        result = parse_analysis_response(raw)
        assert result.parse_error is not None
        assert result.raw_response == raw

    def test_transactions_not_a_list(self):
        result = parse_analysis_response('{"transactions": {"a": 1}}')
        assert "transactions must be a list" in result.parse_error

    def test_non_numeric_pl(self):
        result = parse_analysis_response('{"plStatement": {"totalRevenue": "lots"}}')
        assert "totalRevenue" in result.parse_error
        assert result.pl_statement is None

    def test_pl_not_object(self):
        result = parse_analysis_response('{"plStatement": [1, 2]}')
        assert result.parse_error == "plStatement must be an object"

    def test_oversized_pl_total(self):
        raw = '{"transactions": [], "plStatement": {"totalRevenue": 1' + "0" * 400 + ', "totalExpenses": 0}}'
        result = parse_analysis_response(raw)
        assert "totalRevenue is out of range" in result.parse_error
        assert result.raw_response == raw
