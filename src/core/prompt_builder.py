from typing import Optional, Sequence

from src.inference.tasks import TASKS_WITH_INPUTS


def build_prompt(
    task: str,
    conversation_history: Sequence[str] = (),
    language_hint: Optional[str] = None,
) -> str:
    """Assemble the instruction text sent to the vision model.

    The task token always comes first. History (oldest first) is only appended
    for tasks that accept free-text input, and the language directive always
    comes last.
    """
    prompt = task
    if task in TASKS_WITH_INPUTS and conversation_history:
        prompt += "\n" + "\n".join(conversation_history)
    if language_hint:
        prompt += f"\nLanguage: {language_hint}"
    return prompt
