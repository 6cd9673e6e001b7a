"""
LLM access for the audit pipeline.

- **llm_client.py**: AsyncOpenAI wrapper that sends the audit request with a
  strict JSON-schema response format and maps transport failures.
- **response_schema.py**: The verdict schema sent to the endpoint and the
  lenient schema used to validate replies.
- **verdict_parsing.py**: Validates and normalizes the model's JSON into a
  Verdict.
"""
