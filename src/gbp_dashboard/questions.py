"""
Customer questions and answers
Answering on Google, stats and reusable answer templates
"""
import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional

from . import config
from .ai import ContentGenerator
from .base import BaseService, user_action
from .database.models import AnswerStatus, QuestionPriority
from .errors import ActionResult, NotFoundError
from .utils import utcnow, last_path_segment, is_blank
from .validation import AnswerInput, QuestionFilter

logger = logging.getLogger(__name__)

OWNER_ANSWER_AUTHOR = "Business owner"


def _words(text: str) -> set:
    return set(re.findall(r"[a-z0-9']+", (text or "").lower()))


def is_answered(question: Dict[str, Any]) -> bool:
    return question.get("answer_status") == AnswerStatus.ANSWERED.value


def match_template(question_text: str, templates: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Best template for a question

    A pattern contained in the question wins outright; otherwise the
    template sharing the most words with the question (at least half of its
    pattern words) is returned. Ties go to the most used template, which
    comes first in the list.
    """
    lower = (question_text or "").lower()
    question_words = _words(lower)

    best, best_score = None, 0.0
    for template in templates:
        pattern = (template.get("question_pattern") or "").lower().strip()
        if not pattern:
            continue
        if pattern in lower:
            return template
        pattern_words = _words(pattern)
        if not pattern_words:
            continue
        score = len(pattern_words & question_words) / len(pattern_words)
        if score >= 0.5 and score > best_score:
            best, best_score = template, score
    return best


class QuestionManager(BaseService):
    """Q&A actions for one user at a time"""

    def __init__(
        self,
        db,
        generator: Optional[ContentGenerator] = None,
        sleep: Optional[Callable[[float], None]] = None,
        **kwargs
    ):
        super().__init__(db, **kwargs)
        self._generator = generator
        self.sleep = sleep or time.sleep

    @property
    def generator(self) -> ContentGenerator:
        if self._generator is None:
            self._generator = ContentGenerator()
        return self._generator

    def _get(self, user_id: str, question_id: int) -> Dict[str, Any]:
        question = self.db.get_question(user_id, question_id)
        if not question:
            raise NotFoundError("Question not found")
        return question

    def _post_answer(self, user_id: str, question: Dict[str, Any], text: str):
        client = self.google_client(user_id, question["gmb_account_id"])
        response = client.answer_question(question["google_location_id"], question["question_id"], text)
        self.db.update_question(
            user_id, question["id"],
            answer_text=text,
            answered_at=utcnow(),
            answered_by=OWNER_ANSWER_AUTHOR,
            answer_id=last_path_segment(response.get("name")),
            answer_status=AnswerStatus.ANSWERED.value,
        )

    # =========================
    # Listing
    # =========================
    @user_action
    def get_questions(self, user_id: str, **filters) -> ActionResult:
        f = QuestionFilter(**filters)
        rows, total = self.db.list_questions(user_id, **f.model_dump())
        return ActionResult.ok(data={
            "questions": rows,
            "total": total,
            "limit": f.limit,
            "offset": f.offset,
            "hasMore": f.offset + len(rows) < total,
        })

    # =========================
    # Answers
    # =========================
    @user_action
    def answer_question(
        self,
        user_id: str,
        question_id: int,
        answer_text: str,
        template_id: Optional[int] = None
    ) -> ActionResult:
        """
        Answer a question on Google

        Args:
            user_id: Owner
            question_id: Local question id
            answer_text: Answer, 1-1500 characters
            template_id: Template the answer came from (usage is counted)
        """
        data = AnswerInput(question_id=question_id, answer_text=answer_text)
        question = self._get(user_id, data.question_id)
        if is_answered(question):
            return ActionResult.fail("This question has already been answered.", "ALREADY_ANSWERED")

        self._post_answer(user_id, question, data.answer_text)
        if template_id is not None:
            self.db.increment_template_usage(user_id, template_id)

        self.db.log_activity(user_id, "question_answer", "Answered a customer question",
                             {"question_id": question["id"]})
        self.refresh_dashboard(action="question_answer", question_id=question["id"])
        logger.info(f"Answered question {question['id']}")
        return ActionResult.ok("Answer posted successfully", {"id": question["id"]})

    @user_action
    def update_answer(self, user_id: str, question_id: int, answer_text: str) -> ActionResult:
        data = AnswerInput(question_id=question_id, answer_text=answer_text)
        question = self._get(user_id, data.question_id)
        if not is_answered(question):
            return ActionResult.fail("This question has not been answered yet.", "NOT_ANSWERED")

        self._post_answer(user_id, question, data.answer_text)
        self.refresh_dashboard(action="question_answer_updated", question_id=question["id"])
        return ActionResult.ok("Answer updated successfully", {"id": question["id"]})

    @user_action
    def delete_answer(self, user_id: str, question_id: int) -> ActionResult:
        question = self._get(user_id, question_id)
        if not is_answered(question):
            return ActionResult.fail("This question has not been answered yet.", "NOT_ANSWERED")

        client = self.google_client(user_id, question["gmb_account_id"])
        client.delete_answer(question["google_location_id"], question["question_id"])

        self.db.update_question(
            user_id, question["id"],
            answer_text=None,
            answered_at=None,
            answered_by=None,
            answer_id=None,
            answer_status=AnswerStatus.UNANSWERED.value,
        )
        self.refresh_dashboard(action="question_answer_deleted", question_id=question["id"])
        return ActionResult.ok("Answer deleted successfully", {"id": question["id"]})

    @user_action
    def bulk_answer(self, user_id: str, question_ids: List[int], answer_text: str) -> ActionResult:
        """Post the same answer to several questions"""
        if not question_ids:
            return ActionResult.fail("No questions selected", "VALIDATION_ERROR")
        limit = config.SYNC_CONFIG["max_bulk_reviews"]
        if len(question_ids) > limit:
            return ActionResult.fail(f"Cannot answer more than {limit} questions at once", "VALIDATION_ERROR")

        answered = 0
        results = []
        for i, question_id in enumerate(question_ids):
            if i > 0:
                self.sleep(config.SYNC_CONFIG["bulk_reply_delay"])
            result = self.answer_question(user_id, question_id, answer_text)
            if result.success:
                answered += 1
            results.append({"question_id": question_id, "success": result.success, "error": result.error})

        message = f"Answered {answered} of {len(question_ids)} questions"
        if answered == 0:
            return ActionResult.fail(message, "BULK_ANSWER_FAILED", {"results": results})
        return ActionResult.ok(message, {"answered": answered, "total": len(question_ids), "results": results})

    @user_action
    def generate_ai_answer(self, user_id: str, question_id: int, context: Optional[str] = None) -> ActionResult:
        question = self._get(user_id, question_id)
        answer = self.generator.generate_question_answer(
            question.get("question_text") or "",
            business_name=question.get("location_name"),
            context=context,
        )
        return ActionResult.ok("AI answer generated", {"id": question["id"], "answer": answer})

    # =========================
    # Stats
    # =========================
    @user_action
    def get_question_stats(self, user_id: str, location_id: Optional[int] = None) -> ActionResult:
        questions = self.db.get_questions_for_user(user_id, location_id)
        total = len(questions)
        answered = sum(1 for q in questions if is_answered(q))
        upvotes = sum(int(q.get("upvote_count") or 0) for q in questions)

        by_priority = {p.value: 0 for p in QuestionPriority}
        for q in questions:
            if q.get("priority") in by_priority:
                by_priority[q["priority"]] += 1

        return ActionResult.ok(data={
            "total": total,
            "unanswered": total - answered,
            "answered": answered,
            "totalUpvotes": upvotes,
            "avgUpvotes": round(upvotes / total, 1) if total else 0.0,
            "byPriority": by_priority,
            "answerRate": round(answered / total * 100, 1) if total else 0.0,
        })

    # =========================
    # Templates
    # =========================
    @user_action
    def save_answer_template(
        self,
        user_id: str,
        question_pattern: str,
        template_answer: str,
        category: Optional[str] = None
    ) -> ActionResult:
        if is_blank(question_pattern) or is_blank(template_answer):
            return ActionResult.fail("Pattern and answer are required", "VALIDATION_ERROR")
        if len(template_answer) > config.MAX_ANSWER_LENGTH:
            return ActionResult.fail(
                f"Answer must be at most {config.MAX_ANSWER_LENGTH} characters", "VALIDATION_ERROR"
            )

        template_id = self.db.insert_template(user_id, category, question_pattern.strip(), template_answer.strip())
        return ActionResult.ok("Template saved", {"id": template_id})

    @user_action
    def get_answer_templates(self, user_id: str, category: Optional[str] = None) -> ActionResult:
        """Templates ordered by how often they were used"""
        return ActionResult.ok(data=self.db.list_templates(user_id, category))

    @user_action
    def suggest_template(self, user_id: str, question_text: str) -> ActionResult:
        template = match_template(question_text, self.db.list_templates(user_id))
        if template is None:
            return ActionResult.ok("No matching template", {"template": None})
        return ActionResult.ok("Template found", {"template": template})
