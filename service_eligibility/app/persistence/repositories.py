"""
Read-only repositories for eligibility reference data.

The evaluation service depends on the protocols below. The in-memory
implementations are seeded from the JSON files shipped under ``app/data``
(or a directory named by ``ELIGIBILITY_REFERENCE_DATA_DIR``) and are what
the service runs against until a database-backed store replaces them.
"""

import json
from collections import defaultdict
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Union

from shared.errors import MalformedExpression
from shared.logging import get_logger
from ..conditions.models import ConditionalRule, Question
from ..fpl.models import FederalPovertyLevel
from ..rules.engine import select_active_rule
from ..rules.models import EligibilityRule, MedicaidProgram

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"
PROGRAMS_FILE = "programs.json"
FPL_FILE = "fpl_guidelines.json"
QUESTIONS_FILE = "question_catalog.json"

logger = get_logger("eligibility.repositories")


class EligibilityRuleRepository(Protocol):
    async def get_active_rule(self, state_code: str, program_id: str,
                              as_of: date) -> Optional[EligibilityRule]: ...

    async def get_rules_by_state(self, state_code: str, as_of: date) -> List[EligibilityRule]: ...

    async def get_programs_by_state(self, state_code: str) -> List[MedicaidProgram]: ...

    async def get_program(self, program_id: str) -> Optional[MedicaidProgram]: ...


class FplRepository(Protocol):
    async def get_fpl(self, year: int, household_size: int,
                      state_code: Optional[str] = None) -> Optional[FederalPovertyLevel]: ...

    async def get_fpl_by_year(self, year: int) -> List[FederalPovertyLevel]: ...


class QuestionCatalog(Protocol):
    async def get_questions(self, state_code: str, program_code: str) -> List[Question]: ...

    async def get_conditional_rules(self, rule_ids: Iterable[str]) -> List[ConditionalRule]: ...


def load_json(path: Union[str, Path]) -> Dict[str, Any]:
    """Read one reference data document; a missing file is an empty document."""
    path = Path(path)
    if not path.exists():
        logger.warning("Reference data file not found", path=str(path))
        return {}
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def parse_rules(documents: Iterable[Dict[str, Any]]) -> List[EligibilityRule]:
    """Build rules from stored documents, skipping any that fail to parse.

    A skipped rule leaves its program without an active version, so the
    program is reported as excluded rather than failing the whole request.
    """
    rules: List[EligibilityRule] = []
    for document in documents:
        try:
            rules.append(EligibilityRule.from_dict(document))
        except (MalformedExpression, KeyError, ValueError, TypeError) as e:
            logger.error(
                "Skipping invalid eligibility rule",
                rule_id=document.get("rule_id"),
                program_id=document.get("program_id"),
                error=str(e)
            )
    return rules


class InMemoryRuleRepository:
    """Programs and versioned rules held in memory."""

    def __init__(self, programs: Iterable[MedicaidProgram], rules: Iterable[EligibilityRule]):
        self._programs: Dict[str, MedicaidProgram] = {}
        self._rules: Dict[str, List[EligibilityRule]] = defaultdict(list)
        for program in programs:
            self._programs[program.program_id] = program
        for rule in rules:
            self._rules[rule.program_id].append(rule)

    @classmethod
    def from_file(cls, path: Optional[Union[str, Path]] = None) -> "InMemoryRuleRepository":
        data = load_json(path or DEFAULT_DATA_DIR / PROGRAMS_FILE)
        programs = [MedicaidProgram.from_dict(item) for item in data.get("programs", [])]
        rules = parse_rules(data.get("rules", []))
        logger.info("Rule repository loaded", programs=len(programs), rules=len(rules))
        return cls(programs, rules)

    async def get_program(self, program_id: str) -> Optional[MedicaidProgram]:
        return self._programs.get(program_id)

    async def get_programs_by_state(self, state_code: str) -> List[MedicaidProgram]:
        state = state_code.upper()
        return sorted(
            (program for program in self._programs.values() if program.state_code == state),
            key=lambda program: program.program_id
        )

    async def get_active_rule(self, state_code: str, program_id: str,
                              as_of: date) -> Optional[EligibilityRule]:
        state = state_code.upper()
        candidates = [rule for rule in self._rules.get(program_id, []) if rule.state_code == state]
        return select_active_rule(candidates, as_of)

    async def get_rules_by_state(self, state_code: str, as_of: date) -> List[EligibilityRule]:
        """Every rule version of the state active on ``as_of``."""
        state = state_code.upper()
        rules = [
            rule
            for program_rules in self._rules.values()
            for rule in program_rules
            if rule.state_code == state and rule.is_active(as_of)
        ]
        return sorted(rules, key=lambda rule: (rule.program_id, rule.version))


class InMemoryFplRepository:
    """Poverty guideline rows held in memory."""

    def __init__(self, records: Iterable[FederalPovertyLevel]):
        self._records: List[FederalPovertyLevel] = list(records)

    @classmethod
    def from_file(cls, path: Optional[Union[str, Path]] = None) -> "InMemoryFplRepository":
        data = load_json(path or DEFAULT_DATA_DIR / FPL_FILE)
        records = [FederalPovertyLevel.from_dict(item) for item in data.get("guidelines", [])]
        logger.info("FPL repository loaded", records=len(records))
        return cls(records)

    async def get_fpl(self, year: int, household_size: int,
                      state_code: Optional[str] = None) -> Optional[FederalPovertyLevel]:
        """State row when one exists, otherwise the baseline row."""
        state = state_code.upper() if state_code else None
        baseline = None
        for record in self._records:
            if record.year != year or record.household_size != household_size:
                continue
            if state is not None and record.state_code == state:
                return record
            if record.is_baseline:
                baseline = record
        return baseline

    async def get_fpl_by_year(self, year: int) -> List[FederalPovertyLevel]:
        return [record for record in self._records if record.year == year]


class InMemoryQuestionCatalog:
    """Questionnaire questions and their visibility rules."""

    def __init__(self, questions: Iterable[Question], rules: Iterable[ConditionalRule]):
        self._questions: List[Question] = list(questions)
        self._rules: Dict[str, ConditionalRule] = {rule.rule_id: rule for rule in rules}

    @classmethod
    def from_file(cls, path: Optional[Union[str, Path]] = None) -> "InMemoryQuestionCatalog":
        data = load_json(path or DEFAULT_DATA_DIR / QUESTIONS_FILE)
        questions = [Question.from_dict(item) for item in data.get("questions", [])]
        rules = [ConditionalRule.from_dict(item) for item in data.get("conditional_rules", [])]
        logger.info("Question catalog loaded", questions=len(questions), rules=len(rules))
        return cls(questions, rules)

    @property
    def questions(self) -> Sequence[Question]:
        return tuple(self._questions)

    @property
    def rules(self) -> Sequence[ConditionalRule]:
        return tuple(self._rules.values())

    async def get_questions(self, state_code: str, program_code: str) -> List[Question]:
        """Questions scoped to the state and program, plus unscoped ones."""
        state = state_code.upper()
        selected = [
            question
            for question in self._questions
            if question.state_code in (None, state) and question.program_code in (None, program_code)
        ]
        return sorted(selected, key=lambda question: (question.display_order, question.question_id))

    async def get_conditional_rules(self, rule_ids: Iterable[str]) -> List[ConditionalRule]:
        """Rules for the known ids; unknown ids are simply absent from the result."""
        return [self._rules[rule_id] for rule_id in sorted(set(rule_ids)) if rule_id in self._rules]
