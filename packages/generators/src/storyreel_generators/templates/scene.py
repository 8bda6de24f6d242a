"""Scene breakdown prompt templates."""

TITLES_PROMPT = """
Based on the following screenplay, break it down into individual scene titles.

REQUIREMENTS:
- Analyze the screenplay and create scene titles that naturally cover all the story beats
{% if expected_count %}
- Break the story down into exactly {{ expected_count }} scenes
{% else %}
- Create as many scenes as needed to cover the story - let the content determine the number
{% endif %}
- Each scene should have:
  * Scene number (e.g., "1", "2", "3")
  * Name/title (brief, descriptive, 2-5 words)
  * Description (1 sentence describing what happens in the scene)

OUTPUT FORMAT: Return a JSON array of scenes. Each scene should be an object with ONLY these fields:
{
  "scene_number": "1",
  "name": "Opening Scene",
  "description": "Brief one sentence description of what happens."
}

Screenplay:
{{ source }}

Return ONLY the JSON array, no other text:
"""


DETAILS_PROMPT = """
Based on the following screenplay and scene titles, generate full details for each scene.

SCREENPLAY CONTEXT:
{{ source }}

SCENE TITLES ({{ scenes | length }} scenes need details):
{% for scene in scenes %}
Scene {{ scene.scene_number }}: {{ scene.name }}
{% endfor %}

REQUIREMENTS:
- For each scene, provide:
  * Description (2-4 sentences describing what happens)
  * Location (where the scene takes place)
  * Characters (list of main characters in the scene)
  * Shot type
  * Mood/tone
  * Notes (any important production details)

OUTPUT FORMAT: Return a JSON array. Each scene should match the scene numbers above and have these fields:
{
  "scene_number": "1",
  "description": "Detailed description...",
  "location": "Location name",
  "characters": ["Character 1", "Character 2"],
  "shot_type": "Interior Daytime",
  "mood": "Mood/tone",
  "notes": "Production notes"
}

IMPORTANT: Only include scenes from the list above. Return ONLY the JSON array, no other text:
"""


DETECTION_PROMPT = """
List the {{ plural }} that appear in the following text.

{% if plural == 'characters' %}
Include every speaking or named character. Keep names consistent and useful for casting.
{% else %}
Include every distinct place a scene happens in. Use the name the script uses.
{% endif %}

Return STRICT JSON (no prose) as:
{
  "{{ plural }}": [
    {"name": "string"}
  ]
}

Text:
{{ source }}
"""


REGENERATE_PROMPT = """
Based on the following screenplay, generate or enhance details for this scene.

SCREENPLAY CONTEXT:
{{ source }}

CURRENT SCENE:
- Scene Number: {{ scene.scene_number or 'N/A' }}
- Name: {{ scene.name }}
- Description: {{ scene.description or missing }}
- Location: {{ scene.location or missing }}
- Characters: {{ scene.characters | names }}
- Shot Type: {{ scene.shot_type or missing }}
- Mood: {{ scene.mood or missing }}
- Notes: {{ scene.notes or missing }}
{% if feedback %}

REVISION NOTES:
{{ feedback }}
{% endif %}

REQUIREMENTS:
- Keep the same scene number and name
- Description: 3-5 complete sentences covering the action, character behavior and emotional tone
- Location, characters, shot type, mood and notes as for a production breakdown

OUTPUT FORMAT: Return a JSON object:
{
  "description": "3-5 complete sentences.",
  "location": "Location name",
  "characters": ["Character 1", "Character 2"],
  "shot_type": "Interior Daytime",
  "mood": "Mood/tone",
  "notes": "Production notes"
}

Return ONLY the JSON object, no other text:
"""
