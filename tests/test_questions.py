"""
Tests for questions, answers and answer templates
"""
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gbp_dashboard.errors import GoogleAPIError
from gbp_dashboard.questions import QuestionManager, match_template

USER = "user-1"


@pytest.fixture
def questions(db, client_factory, generator):
    return QuestionManager(db, generator=generator, client_factory=client_factory, sleep=MagicMock())


@pytest.mark.unit
class TestMatchTemplate:

    TEMPLATES = [
        {"id": 1, "question_pattern": "opening hours"},
        {"id": 2, "question_pattern": "parking available nearby"},
        {"id": 3, "question_pattern": ""},
    ]

    def test_substring_wins(self):
        assert match_template("What are your OPENING HOURS on Sunday?", self.TEMPLATES)["id"] == 1

    def test_word_overlap(self):
        # two of three pattern words
        assert match_template("Is there parking nearby?", self.TEMPLATES)["id"] == 2

    def test_overlap_below_half(self):
        assert match_template("Is parking free?", self.TEMPLATES) is None

    def test_no_templates(self):
        assert match_template("anything", []) is None


@pytest.mark.integration
class TestAnswers:

    def test_list(self, questions, make_question):
        make_question()
        make_question()
        data = questions.get_questions(USER, status="unanswered").data
        assert data["total"] == 2
        assert data["hasMore"] is False

    def test_answer(self, db, questions, make_question, fake_google):
        question_id = make_question()

        result = questions.answer_question(USER, question_id, " We open at 9. ")

        assert result.success
        fake_google.answer_question.assert_called_once_with("locations/222", "q-1", "We open at 9.")
        question = db.get_question(USER, question_id)
        assert question["answer_status"] == "answered"
        assert question["answer_text"] == "We open at 9."
        assert question["answered_by"] == "Business owner"
        assert question["answer_id"] == "ans-9"

    def test_answer_twice(self, questions, make_question):
        question_id = make_question()
        questions.answer_question(USER, question_id, "Yes")
        assert questions.answer_question(USER, question_id, "Yes again").error_code == "ALREADY_ANSWERED"

    def test_answer_too_long(self, questions, make_question):
        question_id = make_question()
        assert questions.answer_question(USER, question_id, "y" * 1501).error_code == "VALIDATION_ERROR"

    def test_answer_google_failure(self, db, questions, make_question, fake_google):
        question_id = make_question()
        fake_google.answer_question.side_effect = GoogleAPIError("Q&A API unavailable")

        result = questions.answer_question(USER, question_id, "Yes")

        assert result.error == "Q&A API unavailable"
        assert db.get_question(USER, question_id)["answer_status"] == "unanswered"

    def test_answer_counts_template_usage(self, db, questions, make_question):
        unused = db.insert_template(USER, None, "wifi", "Yes")
        used = db.insert_template(USER, None, "hours", "9 to 5")
        question_id = make_question()

        questions.answer_question(USER, question_id, "9 to 5", template_id=used)

        assert [t["id"] for t in db.list_templates(USER)] == [used, unused]

    def test_update_and_delete(self, db, questions, make_question, fake_google):
        question_id = make_question()
        assert questions.update_answer(USER, question_id, "x").error_code == "NOT_ANSWERED"
        assert questions.delete_answer(USER, question_id).error_code == "NOT_ANSWERED"

        questions.answer_question(USER, question_id, "First")
        assert questions.update_answer(USER, question_id, "Second").success
        assert db.get_question(USER, question_id)["answer_text"] == "Second"

        assert questions.delete_answer(USER, question_id).success
        fake_google.delete_answer.assert_called_once_with("locations/222", "q-1")
        question = db.get_question(USER, question_id)
        assert question["answer_status"] == "unanswered"
        assert question["answer_text"] is None
        assert question["answer_id"] is None

    def test_bulk_answer(self, questions, make_question):
        first = make_question()
        second = make_question()
        questions.answer_question(USER, second, "Done")

        result = questions.bulk_answer(USER, [first, second], "Yes")

        assert result.message == "Answered 1 of 2 questions"
        assert questions.sleep.call_count == 1

    def test_bulk_answer_all_fail(self, questions):
        assert questions.bulk_answer(USER, [404], "Yes").error_code == "BULK_ANSWER_FAILED"
        assert questions.bulk_answer(USER, [], "Yes").error_code == "VALIDATION_ERROR"

    def test_generate_ai_answer(self, questions, make_question, generator):
        question_id = make_question()
        result = questions.generate_ai_answer(USER, question_id, context="Open 9-5")
        assert result.data["answer"] == "We open at 9am on Sundays."
        generator.generate_question_answer.assert_called_once_with(
            "What time do you open on Sundays?", business_name="Acme Downtown", context="Open 9-5"
        )


@pytest.mark.integration
class TestStatsAndTemplates:

    def test_stats(self, db, questions, make_question):
        make_question(upvote_count=4, priority="urgent")
        answered = make_question(upvote_count=1)
        questions.answer_question(USER, answered, "Yes")

        data = questions.get_question_stats(USER).data

        assert data["total"] == 2
        assert data["answered"] == 1
        assert data["unanswered"] == 1
        assert data["totalUpvotes"] == 5
        assert data["avgUpvotes"] == 2.5
        assert data["byPriority"]["urgent"] == 1
        assert data["byPriority"]["medium"] == 1
        assert data["answerRate"] == 50.0

    def test_save_template(self, questions):
        result = questions.save_answer_template(USER, "  Parking  ", " Free lot behind the shop ", "parking")
        assert result.success
        template = questions.get_answer_templates(USER).data[0]
        assert template["question_pattern"] == "parking"
        assert template["template_answer"] == "Free lot behind the shop"

    def test_save_template_validation(self, questions):
        assert questions.save_answer_template(USER, " ", "x").error_code == "VALIDATION_ERROR"
        assert questions.save_answer_template(USER, "p", "x" * 1501).error_code == "VALIDATION_ERROR"

    def test_suggest_template(self, questions):
        questions.save_answer_template(USER, "opening hours", "9 to 5")
        assert questions.suggest_template(USER, "What are your opening hours?").data["template"]["template_answer"] == "9 to 5"
        assert questions.suggest_template(USER, "Do you sell cake?").data["template"] is None
