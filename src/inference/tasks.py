from typing import Dict, FrozenSet, Tuple

CAPTION = "<CAPTION>"
DETAILED_CAPTION = "<DETAILED_CAPTION>"
MORE_DETAILED_CAPTION = "<MORE_DETAILED_CAPTION>"
CAPTION_TO_PHRASE_GROUNDING = "<CAPTION_TO_PHRASE_GROUNDING>"
OBJECT_DETECTION = "<OD>"
DENSE_REGION_CAPTION = "<DENSE_REGION_CAPTION>"
REGION_PROPOSAL = "<REGION_PROPOSAL>"
OCR = "<OCR>"
OCR_WITH_REGION = "<OCR_WITH_REGION>"

# Tasks whose prompt may carry free-text conditioning after the task token.
TASKS_WITH_INPUTS: FrozenSet[str] = frozenset({
    CAPTION_TO_PHRASE_GROUNDING,
    MORE_DETAILED_CAPTION,
})

# Shape of the post-processed output for each task.
TASK_OUTPUT_SHAPES: Dict[str, str] = {
    CAPTION: "pure_text",
    DETAILED_CAPTION: "pure_text",
    MORE_DETAILED_CAPTION: "pure_text",
    OCR: "pure_text",
    CAPTION_TO_PHRASE_GROUNDING: "phrase_grounding",
    OBJECT_DETECTION: "description_with_bboxes",
    DENSE_REGION_CAPTION: "description_with_bboxes",
    REGION_PROPOSAL: "description_with_bboxes",
    OCR_WITH_REGION: "description_with_polygons",
}

DEFAULT_OUTPUT_SHAPE = "pure_text"


def output_shape(task: str) -> str:
    return TASK_OUTPUT_SHAPES.get(task, DEFAULT_OUTPUT_SHAPE)


def split_task_token(text: str) -> Tuple[str, str]:
    """Split ``"<TASK>rest"`` into ``("<TASK>", "rest")``.

    Text that does not open with a task token comes back as ``("", text)``.
    """
    if text.startswith("<") and ">" in text:
        end = text.index(">") + 1
        return text[:end], text[end:]
    return "", text
