"""Rendering contract.

Turns questions, results and progress into plain dicts for renderers, and
results into a printable HTML page. Empty result sections are left out
entirely rather than rendered as empty lists.
"""

from __future__ import annotations

from html import escape

from vetpref.models import Question, Result


CONFIG_ERROR_MESSAGE = "Configuration error. Please restart the tool."

DEFAULT_DISCLAIMER = (
    "This tool provides general guidance only. Always consult with HR or "
    "review official OPM guidelines for your specific situation."
)


def question_view(question: Question) -> dict:
    view = {
        "id": question.id,
        "text": question.text,
        "options": [option.answer_text for option in question.options],
    }
    if question.help_text:
        view["helpText"] = question.help_text
    return view


def result_view(result: Result) -> dict:
    view = {
        "type": result.type,
        "title": result.title,
        "description": result.description,
        "confidence": result.confidence,
        "eligible": result.is_eligible,
    }
    if result.reasoning:
        view["reasoning"] = list(result.reasoning)
    if result.required_documents:
        view["requiredDocuments"] = list(result.required_documents)
    if result.additional_info:
        view["additionalInfo"] = list(result.additional_info)
    if result.links:
        view["links"] = [{"url": link.url, "text": link.text} for link in result.links]
    return view


def progress_view(fraction: float, current_step: int, total_steps: int) -> dict:
    return {
        "fraction": fraction,
        "percent": round(fraction * 100),
        "currentStep": min(current_step, total_steps) if total_steps else current_step,
        "totalSteps": total_steps,
    }


# ---------------------------------------------------------------------------
# Print
# ---------------------------------------------------------------------------

def _section(heading: str, items: list[str]) -> str:
    if not items:
        return ""
    lis = "".join(f"<li>{item}</li>" for item in items)
    return f"<section><h3>{escape(heading)}</h3><ul>{lis}</ul></section>"


def print_html(result: Result, tool_name: str = "Veterans' Preference Eligibility Tool",
               disclaimer: str = DEFAULT_DISCLAIMER) -> str:
    """Standalone, non-interactive HTML page for a Result."""
    body = [
        f"<h1>{escape(tool_name)}</h1>",
        f'<article class="tool-result {escape(result.type)}">',
        f"<h2>{escape(result.title)}</h2>",
        f"<p>{escape(result.description)}</p>",
        _section("Why", [escape(r) for r in result.reasoning]),
        _section("Required Documents", [escape(d) for d in result.required_documents]),
        _section("Additional Information", [escape(i) for i in result.additional_info]),
        _section(
            "Official Resources",
            [f"{escape(link.text)}: {escape(link.url)}" for link in result.links],
        ),
        "</article>",
        f'<p class="disclaimer"><strong>Important:</strong> {escape(disclaimer)}</p>',
    ]
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en"><head><meta charset="utf-8">'
        f"<title>{escape(result.title)}</title></head>"
        f"<body>{''.join(part for part in body if part)}</body></html>\n"
    )
