from typing import Optional

CODE_PROMPT = """
You are a Python code generator that creates self-contained, executable code snippets. When writing code:

1. Each snippet should be complete and runnable on its own
2. Prefer using print() statements to display outputs
3. Include helpful comments explaining the code
4. Keep snippets concise (generally under 15 lines)
5. Avoid external dependencies - use Python standard library
6. Handle potential errors gracefully
7. Return meaningful output that demonstrates the code's functionality
8. Don't use input() or other interactive functions
9. Don't access files or network resources
10. Don't use infinite loops

Respond with a JSON object of the form {"code": "<the code>"}.
"""

SHEET_PROMPT = """
You are a spreadsheet creation assistant. Create a spreadsheet in csv format based on the given prompt.
The spreadsheet should contain meaningful column headers and data.
Respond with a JSON object of the form {"csv": "<the csv>"}.
"""

_UPDATE_INTROS = {
    "text": "Improve the following contents of the document based on the given prompt.",
    "code": "Improve the following code snippet based on the given prompt.",
    "sheet": "Improve the following spreadsheet based on the given prompt.",
}


def update_document_prompt(current_content: Optional[str], kind: str) -> str:
    intro = _UPDATE_INTROS.get(kind)
    if not intro:
        return ""
    return f"{intro}\n\n{current_content or ''}\n"
