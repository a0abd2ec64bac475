"""Tests for the heuristic change parser."""

from scopegraph.change_parser import ChangeParser
from scopegraph.models import ChangeInput


class TestEntityExtraction:
    """Tests for entity extraction."""

    def test_pascal_case_entities(self):
        parsed = ChangeParser().parse(ChangeInput(description="Add avatar field to User profile"))
        assert parsed.entities == ["User"]

    def test_excludes_framework_and_action_words(self):
        parsed = ChangeParser().parse(ChangeInput(description="Create Service for Payment in React"))
        assert parsed.entities == ["Payment"]

    def test_explicit_model_mentions(self):
        parsed = ChangeParser().parse(ChangeInput(description="rename column on model Invoice"))
        assert "Invoice" in parsed.entities

    def test_compound_names(self):
        parsed = ChangeParser().parse(ChangeInput(description="keep discounts on OrderItem rows"))
        assert parsed.entities == ["OrderItem"]


class TestOperations:
    """Tests for operation detection."""

    def test_verb_pattern(self):
        parsed = ChangeParser().parse(ChangeInput(description="Add avatar field to User profile"))
        assert len(parsed.operations) == 1
        assert parsed.operations[0].type == "add"
        assert parsed.operations[0].target == "avatar field to User profile"

    def test_keyword_fallback(self):
        parsed = ChangeParser().parse(ChangeInput(description="Schema housekeeping"))
        assert [(op.type, op.target) for op in parsed.operations] == [("migrate", "inferred")]

    def test_no_operations(self):
        parsed = ChangeParser().parse(ChangeInput(description="Payments"))
        assert parsed.operations == []


class TestChangeType:
    """Tests for change type inference."""

    def test_feature(self):
        parsed = ChangeParser().parse(ChangeInput(description="Add avatar field to User profile"))
        assert parsed.change_type == "feature"

    def test_bugfix(self):
        parsed = ChangeParser().parse(ChangeInput(description="Fix crash when deleting Invoice"))
        assert parsed.change_type == "bugfix"

    def test_migration(self):
        parsed = ChangeParser().parse(ChangeInput(description="Schema housekeeping"))
        assert parsed.change_type == "migration"

    def test_explicit_type_wins(self):
        parsed = ChangeParser().parse(
            ChangeInput(description="Fix crash when deleting Invoice", change_type="refactor")
        )
        assert parsed.change_type == "refactor"


class TestKeywordsAndConfidence:
    """Tests for keywords and confidence."""

    def test_keywords_drop_stop_words(self):
        parsed = ChangeParser().parse(ChangeInput(description="Add avatar field to User profile"))
        assert parsed.keywords == ["add", "avatar", "field", "user", "profile"]

    def test_file_stems_feed_keywords(self):
        parsed = ChangeParser().parse(
            ChangeInput(description="tweak", target_files=["src/billing/invoice.py"])
        )
        assert "invoice" in parsed.keywords

    def test_confidence(self):
        parsed = ChangeParser().parse(ChangeInput(description="Add avatar field to User profile"))
        assert parsed.confidence == 0.75

    def test_confidence_floor(self):
        parsed = ChangeParser().parse(ChangeInput(description="zz"))
        assert parsed.confidence == 0.5


class TestHelpers:
    """Tests for parse_from_task and parse_from_spec."""

    def test_parse_from_task(self):
        parsed = ChangeParser().parse_from_task("Remove legacy Coupon", "No longer used")
        assert parsed.entities == ["Coupon"]
        assert parsed.change_type == "deletion"

    def test_parse_from_spec(self):
        parsed = ChangeParser().parse_from_spec("Invoices", "Implement Invoice export", module="billing")
        assert "Invoice" in parsed.entities
        assert "billing" in parsed.keywords
