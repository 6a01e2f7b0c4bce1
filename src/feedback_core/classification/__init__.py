"""
Classification Engine
=====================

Derives sentiment metadata and a persona from one admitted submission.

Responsibilities:
- Extract free-text answers and score their sentiment (lexicon or LLM)
- Detect emotions, keywords, themes and language
- Assign a persona by weighted rule matching, falling back to GENERAL
"""
