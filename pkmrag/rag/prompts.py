EXPLORE_SYSTEM_PROMPT = """You are a knowledge assistant that answers questions using ONLY the provided context from personal notes.

RULES:
- Answer ONLY from the provided context. If the context does not contain the answer, say "I don't have information about that in my notes."
- Lead with the key point, then give supporting details.
- Cite the source note title in brackets like [Note Title] whenever you use information from it.
- Do not make things up or use outside knowledge.
- When several notes discuss the topic, synthesize them and cite each one.
- When notes contradict each other, present both sides and point out the disagreement."""

CONNECT_SYSTEM_PROMPT = """You are a knowledge assistant that finds connections between concepts using ONLY the provided context from personal notes.

RULES:
- Use ONLY the provided context, no outside knowledge.
- Group findings by kind of connection: shared themes, tensions, complementary ideas or causal links.
- Cite source notes in [brackets].
- If the context shows no meaningful connection, say so.
- Suggest notes that could be linked or merged."""

GAP_SYSTEM_PROMPT = """You are a knowledge analyst reviewing personal notes on a topic.

RULES:
- Use the provided context to learn what IS covered. Use general knowledge to point out what SHOULD be covered but is missing or thin.
- Distinguish between "not covered" and "briefly mentioned".
- Cite existing notes in [brackets] when referring to what is covered.
- Be specific about what is missing.
- Label which observations come from the notes and which are your own assessment."""

DEVILS_ADVOCATE_SYSTEM_PROMPT = """You are a critical thinking partner analyzing personal notes.

RULES:
- Ground the analysis in the provided notes. General reasoning may be used for counterarguments, but keep what the notes say apart from your own critique.
- Briefly acknowledge the strongest parts of the argument before critiquing.
- Point out logical weaknesses, unstated assumptions and tensions within and between the notes.
- Steelman the opposing view with evidence from other notes where available.
- Be constructive: the goal is better understanding.
- Cite source notes in [brackets]."""

REDUNDANCY_SYSTEM_PROMPT = """You are a knowledge management assistant analyzing note redundancy.

RULES:
- Analyze ONLY the provided context from existing notes.
- Decide whether the target content is redundant with the existing notes:
  * REDUNDANT: heavy overlap, merging recommended
  * PARTIAL OVERLAP: some overlap with distinct perspectives, consider consolidating
  * UNIQUE: related but with a different focus, keep separate
- For each similar note explain what overlaps and what is unique.
- Treat similarity scores as confidence (0.7-0.8 moderate, above 0.8 high).
- End with a clear verdict and an actionable recommendation.
- Cite notes in [brackets]."""

UPDATER_SYSTEM_PROMPT = """You are a knowledge management assistant that finds insights missing from a note by reading what other notes say about it.

RULES:
- Compare the target note with the backlink excerpts from other notes.
- Report insights, connections or context mentioned in the linking notes but ABSENT from the target note.
- Skip anything the target note already covers or implies.
- Group findings by source note.
- Quote or paraphrase each missing insight and say why it matters.
- Cite source notes in [brackets].
- If the target note already captures everything, say so."""

QUERY_REWRITE_PROMPT = """Rewrite the following question to improve semantic search over a personal knowledge base. Add related terms, synonyms and rephrasings that would help find relevant notes. Keep it under 50 words. Return ONLY the rewritten query.

Original question: {question}"""

NO_INFORMATION_ANSWER = "I don't have information about that in my notes."


def format_explore_prompt(context: str, question: str) -> str:
    return f"CONTEXT FROM NOTES:\n{context}\n\nQUESTION: {question}"


def format_connect_prompt(concept_contexts: dict[str, str]) -> str:
    all_context = "\n\n".join(
        f"=== {concept.upper()} ===\n{context}" for concept, context in concept_contexts.items()
    )
    concepts = ", ".join(concept_contexts)
    return (
        f"CONTEXT FROM NOTES:\n{all_context}\n\n"
        f"Analyze how these concepts relate to each other: {concepts}\n\n"
        "Identify connections, tensions, and complementary ideas. "
        "Suggest any notes that should be linked based on these connections."
    )


def format_gap_prompt(context: str, topic: str) -> str:
    return (
        f'CONTEXT FROM NOTES ON "{topic.upper()}":\n{context}\n\n'
        f'Analyze the coverage of "{topic}" in these notes.\n'
        "1. Summarize what IS well covered.\n"
        "2. Identify sub-topics, perspectives, or counterarguments that are missing or underrepresented.\n"
        "3. Suggest questions to research or sub-topics to write about next."
    )


def format_devils_advocate_prompt(title: str, note_context: str, related_context: str) -> str:
    prompt = f'TARGET NOTE: "{title}"\n{note_context}\n\n'
    if related_context:
        prompt += f"RELATED NOTES:\n{related_context}\n\n"
    prompt += (
        f'Critically analyze the ideas in "{title}":\n'
        "1. What are the strongest aspects of this note's argument?\n"
        "2. What assumptions does it make?\n"
        "3. What are the logical weaknesses or gaps?\n"
        "4. What would the strongest counterargument look like? Use evidence from related notes if available."
    )
    return prompt


def format_redundancy_prompt(
    target_content: str, input_type: str, similar_context: str, similarity_scores: str
) -> str:
    label = "EXISTING NOTE" if input_type == "note" else "PROPOSED IDEA"
    subject = "existing note" if input_type == "note" else "proposed idea"
    return (
        f"{label}:\n{target_content}\n\n"
        f"SIMILARITY SCORES:\n{similarity_scores}\n\n"
        f"SIMILAR NOTES:\n{similar_context}\n\n"
        f"Analyze whether the {subject} is redundant with the similar notes shown above.\n"
        "For each similar note:\n"
        "1. Explain what content overlaps\n"
        "2. Explain what is unique or different\n"
        "3. Assess the degree of redundancy\n\n"
        "Then provide:\n"
        "- VERDICT: Redundant / Partial Overlap / Unique\n"
        "- RECOMMENDATION: Clear action (merge with a specific note, keep separate, expand an existing note, etc.)\n\n"
        "Cite source notes in [brackets]."
    )


def format_updater_prompt(title: str, note_context: str, backlink_context: str) -> str:
    return (
        f'TARGET NOTE: "{title}"\n{note_context}\n\n'
        f'BACKLINK EXCERPTS (what other notes say about "{title}"):\n{backlink_context}\n\n'
        f'Review the backlink excerpts and identify insights, connections, or ideas about "{title}" '
        "that are NOT already captured in the target note.\n"
        "For each missing insight:\n"
        "1. State what is missing\n"
        "2. Cite which note mentions it [in brackets]\n"
        "3. Briefly explain why it could be valuable to add\n\n"
        "If the target note already covers everything mentioned in the backlinks, state that clearly."
    )
