PARSE_JD_PROMPT = """You are an expert at analyzing job descriptions.
Extract the key information from the job description below into three categories:

1. responsibilities: 5-8 main job responsibilities and duties
2. companyCulture: 3-5 cultural values, work environment or company characteristics
3. technicalSkills: 5-8 technical skills, tools, technologies or qualifications

Return strict JSON with exactly this shape:
{{"responsibilities": [{{"summary": "...", "description": "..."}}],
  "companyCulture": [{{"summary": "...", "description": "..."}}],
  "technicalSkills": [{{"summary": "...", "description": "..."}}]}}

- "summary": a 1-2 word label (e.g. "React Development", "Team Collaboration").
- "description": the requirement itself, concise.
- Do not infer anything the job description does not state.

JOB DESCRIPTION:
{job_description}
"""

COVERAGE_PROMPT = """You are a hiring manager reviewing a cover letter against the {section_label} from a job description.

JOB REQUIREMENTS ({section}):
{requirements}

COVER LETTER:
{cover_letter}

For each requirement, rate how well the cover letter addresses it from 0 to 100:
- 0-30: not addressed or very poorly
- 31-60: partially addressed or mentioned briefly
- 61-80: well addressed with good examples
- 81-100: excellently addressed with specific, relevant examples

Return strict JSON: {{"results": [{{"score": <0-100>, "feedback": "<1-2 sentences>"}}]}}
with exactly one result per requirement, in the same order.
"""

IMPROVE_PROMPT = """You are a writing assistant for cover letters. Give exactly 3 improved versions of the sentence below.

- Keep them brief; avoid corporate-speak, cliches and buzzwords.
- Sound like a person wrote it.
- Change only 1-2 words or short phrases per version.

Return strict JSON:
{{"suggestions": ["...", "...", "..."],
  "changes": [[{{"from": "old words", "to": "new words"}}], [...], [...]]}}

SENTENCE: "{sentence}"
"""

SHORTEN_PROMPT = """You are a writing assistant that makes cover letters more concise. Give exactly 3 SHORTER versions of the sentence below.

- Cut 20-40% of the words: filler, redundant phrases, weak qualifiers.
- Keep the meaning and sound natural.

Return strict JSON:
{{"suggestions": ["...", "...", "..."],
  "changes": [[{{"from": "old words", "to": "new words"}}], [...], [...]]}}

SENTENCE: "{sentence}"
"""
