"""
Prompt template for structured code analysis.

The LLM is asked to answer with exactly the JSON contract the analysis
client validates: errors, weak_areas, quality_score.
"""
from __future__ import annotations


def build_code_review_prompt(
    code: str,
    language: str,
    topic: str | None = None,
) -> list[dict]:
    """Build the prompt messages for analyzing one code submission.

    Args:
        code: Learner's source code.
        language: Programming language of the code.
        topic: Optional topic the learner was practicing.

    Returns:
        List of message dicts suitable for LLM chat API.
    """
    topic_context = f"\nThe learner was practicing: {topic}.\n" if topic else ""

    return [
        {
            "role": "system",
            "content": (
                "You are a programming tutor who reviews learner code. "
                "Reply with a single JSON object and nothing else."
            ),
        },
        {
            "role": "user",
            "content": f"""Review the following {language} submission.
{topic_context}
```{language}
{code}
```

Return JSON in exactly this shape:
{{
  "errors": [
    {{
      "type": "short error category, e.g. off_by_one, null_check, wrong_base_case",
      "severity": "low | medium | high",
      "line": 1,
      "message": "what is wrong",
      "suggestion": "how to fix it",
      "area": "the concept this error shows weakness in, e.g. recursion, loops"
    }}
  ],
  "weak_areas": ["concept tags the learner should practice, lowercase snake_case"],
  "quality_score": 0
}}

Rules:
- quality_score is a number from 0 (unusable) to 100 (exemplary).
- If errors is non-empty, weak_areas must be non-empty.
- Use an empty errors list for correct code.""",
        },
    ]
