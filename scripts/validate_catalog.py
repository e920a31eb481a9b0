#!/usr/bin/env python3
"""
Question catalog validation script for the Eligibility Screening service.
This script validates question catalogs and their conditional rules.
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict, List

from shared.errors import CircularDependencyError, EligibilityException, ReferenceIntegrityError
from service_eligibility.app.conditions.models import ConditionalRule, Question
from service_eligibility.app.conditions.validator import ConditionalRuleValidator
from service_eligibility.app.persistence.repositories import DEFAULT_DATA_DIR, QUESTIONS_FILE


def validate_catalog(catalog_path: Path) -> List[str]:
    """Validate a single question catalog file."""
    errors = []

    try:
        with open(catalog_path, 'r') as f:
            catalog: Dict[str, Any] = json.load(f)
    except json.JSONDecodeError as e:
        errors.append(f"Invalid JSON: {e}")
        return errors
    except OSError as e:
        errors.append(f"Error reading file: {e}")
        return errors

    try:
        questions = [Question.from_dict(item) for item in catalog.get("questions", [])]
        rules = [ConditionalRule.from_dict(item) for item in catalog.get("conditional_rules", [])]
    except (KeyError, ValueError, TypeError) as e:
        errors.append(f"Invalid catalog entry: {e}")
        return errors

    if not questions:
        errors.append("Catalog has no questions")
        return errors

    # Visibility is evaluated per state and program, so validate each slice
    scopes = sorted({(q.state_code, q.program_code) for q in questions}, key=lambda s: (s[0] or "", s[1] or ""))
    for state_code, program_code in scopes:
        scoped = [
            q for q in questions
            if q.state_code in (None, state_code) and q.program_code in (None, program_code)
        ]
        label = f"{state_code or '*'}/{program_code or '*'}"
        try:
            ConditionalRuleValidator().validate(scoped, rules)
        except ReferenceIntegrityError as e:
            errors.extend(f"{label}: {problem['message']}" for problem in e.problems)
        except CircularDependencyError as e:
            errors.append(f"{label}: circular rules between {', '.join(e.question_ids)}")
        except EligibilityException as e:
            errors.append(f"{label}: {e.message}")

    return errors


def main(argv: List[str]) -> int:
    """Main function to validate question catalogs."""
    paths = [Path(arg) for arg in argv] or [DEFAULT_DATA_DIR / QUESTIONS_FILE]
    print("Validating question catalogs...")

    total_errors = 0
    for path in paths:
        if not path.exists():
            print(f"❌ {path}: file not found")
            total_errors += 1
            continue

        errors = validate_catalog(path)
        if errors:
            print(f"❌ {path}: {len(errors)} validation errors")
            for error in errors:
                print(f"   - {error}")
            total_errors += len(errors)
        else:
            print(f"✅ {path}: catalog is valid")

    print(f"\nValidation complete: {total_errors} total errors")
    return 0 if total_errors == 0 else 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
