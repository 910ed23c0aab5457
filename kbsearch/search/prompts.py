SEARCH_SYSTEM_PROMPT = "You help a knowledge-base search engine understand and rank queries. Reply with JSON only."

INTENT_PROMPT = """Analyze the intent of this knowledge-base search query.

Return JSON with exactly these fields:
{{
  "action": "find" | "summarize" | "compare" | "explain",
  "keywords": ["keyword", ...],
  "entity": "main named entity, or null",
  "timeframe": "today" | "this_week" | "this_month" | "this_year" | null,
  "file_type": "document" | "spreadsheet" | "presentation" | "image" | "audio" | "video" | null
}}

Only set timeframe or file_type when the query asks for them explicitly.
Keywords should be the terms worth matching, in the query's own language.

Query: "{query}"
"""

SCORING_PROMPT = """Rate how relevant each document is to the search query "{query}".

Score every document from 0 (unrelated) to 100 (exactly what the query asks for) and give a short reason.
Refer to documents by their index. Return JSON:
{{
  "scores": [
    {{"index": 0, "score": 85, "reason": "why it matches"}},
    {{"index": 1, "score": 12, "reason": "why it does not"}}
  ]
}}

Documents:
{documents}"""

SCORING_DOCUMENT = """[{index}] {name}
{excerpt}"""
