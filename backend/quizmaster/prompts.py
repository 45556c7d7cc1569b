from langchain_core.prompts import PromptTemplate  # type: ignore

# Prompt to draft multiple-choice questions an author can then edit.
QUESTION_DRAFT_PROMPT = PromptTemplate(
    input_variables=["article_text", "num_questions"],
    template=(
        "You help teachers write quizzes from Wikipedia articles.\n"
        "Using ONLY facts stated in the article text below, write {num_questions}\n"
        "multiple-choice questions.\n\n"
        "For each question, output an object with keys:\n"
        " - question_text: the question\n"
        " - options: an array of 4 distinct answer options (strings)\n"
        " - correct_answer: the exact text of the correct option\n\n"
        "Return ONLY a JSON array of question objects.\n\n"
        "Article text:\n"
        "{article_text}\n"
    ),
)

# Prompt to fix a response that was meant to be the JSON above.
REPAIR_DRAFT_PROMPT = PromptTemplate(
    input_variables=["broken_json"],
    template=(
        "The previous response was intended to be a JSON array of objects with keys\n"
        "question_text (string), options (array of 4 strings) and correct_answer (string),\n"
        "but it was invalid. Return ONLY the corrected JSON array, no commentary.\n"
        "Broken response:\n{broken_json}\n"
    ),
)
