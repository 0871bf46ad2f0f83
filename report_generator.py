"""
Report Generator

Builds prompts from analysis data and forwards them to Gemini through
OpenRouter's OpenAI-compatible API. Model text is returned unmodified.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence, cast

from openai import AsyncOpenAI, OpenAIError

from config import Config

logger = logging.getLogger(__name__)

FALLBACK_REPORT = (
    "# Your Song Analysis Report\n\n"
    "We couldn't generate the detailed AI report right now. Your analysis "
    "results above are complete; please try regenerating the report in a few minutes."
)

BASE_ASSISTANT_INSTRUCTION = (
    "You are a friendly and helpful AI assistant for MelodyCompare, a service that "
    "analyzes music for copyright risk. Your name is Melody. Be concise and encouraging."
)

APP_STATE_INSTRUCTIONS = {
    "home": "The user is on the homepage. Answer general questions about the service, what it does, and how to use it.",
    "pricing": "The user is viewing the pricing page. Answer questions about the different plans, features, and billing.",
    "info": "The user is on the info/FAQ page. Answer questions about the company's mission, policies, and provide help information.",
    "prompt-composer": "The user is using the AI Music Prompt Composer. Help them craft better prompts for music generation AI like Suno or Udio. Give creative and technical advice.",
    "library": "The user is viewing their library of past analyses. Explain that they can click on any item to view its detailed report and that you can answer questions about a specific report if they open it.",
    "catalog": "The user is browsing the Cleared Catalog, a marketplace for low-risk music. Explain what the catalog is and how they can find music or submit their own.",
}

BRAINSTORM_INSTRUCTIONS = {
    "titles": "Generate 5 creative and unique alternative song titles.",
    "lyrics": "Generate 3 short, distinct lyrical concepts (2-3 lines each) that could fit a new direction for the song.",
    "chords": "Suggest 3 alternative chord progressions that could replace a high-similarity section. Provide them in a standard format (e.g., C - G - Am - F).",
}

ENHANCE_PROMPT_INSTRUCTION = """You are an expert AI music prompt engineer. Your task is to take a user's basic idea and expand it into a rich, detailed, and effective prompt for an AI music generator like Suno or Udio.
- Use descriptive adjectives and evocative language.
- Structure the prompt clearly, often using comma-separated tags or descriptive phrases.
- Specify instrumentation, mood, genre, and vocal style if mentioned.
- Maintain the core creative intent of the user's input.
- Return ONLY the enhanced prompt, without any explanations, greetings, or extra text."""


class ReportGeneratorError(Exception):
    """Raised when the generative-text API call fails or returns unusable output."""


class ReportGeneratorUnavailable(ReportGeneratorError):
    """Raised when no API key is configured."""


def system_instruction_for_context(context: Optional[Mapping[str, Any]]) -> str:
    """Pick the assistant's system instruction for the page the user is on."""
    context = context or {}
    app_state = context.get("appState")

    if app_state == "analysis":
        analysis_data = context.get("analysisData")
        if analysis_data:
            return (
                f"{BASE_ASSISTANT_INSTRUCTION} The user is currently viewing a detailed song analysis. "
                "Your primary goal is to help them understand this data. Answer questions based ONLY "
                "on the provided JSON data. Do not invent information. Analysis Data: \n"
                f"```json\n{json.dumps(analysis_data, indent=2)}\n```"
            )
        return (
            f"{BASE_ASSISTANT_INSTRUCTION} The user is on the analysis page, but there's no specific "
            "data loaded in your context. Ask them to describe what they are looking at or what they need help with."
        )

    instruction = APP_STATE_INSTRUCTIONS.get(app_state or "")
    if instruction:
        return f"{BASE_ASSISTANT_INSTRUCTION} {instruction}"
    return BASE_ASSISTANT_INSTRUCTION


def build_report_prompt(
    analysis: Mapping[str, Any], analysis_type: str = "database", copyrighted_song_name: str = ""
) -> str:
    if analysis_type == "comparison":
        preamble = (
            "A musician has received the following analysis comparing their AI-generated song "
            f'to a specific track they uploaded, named "{copyrighted_song_name}".'
        )
    else:
        preamble = (
            "A musician has received the following analysis comparing their AI-generated song "
            "to tracks in a public database."
        )

    return f"""You are an expert Music Licensing Advisor. {preamble}

Analysis Data:
```json
{json.dumps(analysis, indent=2)}
```

Your task is to provide a detailed, encouraging, and actionable report in Markdown format. The report MUST include the following sections in this exact order:

1.  A main title for the report, using a single '#' in Markdown (e.g., # Your Song Analysis Report).
2.  A subtitle "Understanding Your Risk Score" using '##'. Explain the 'Overall Risk' score and 'Risk Level' in plain, easy-to-understand English. Avoid overly technical jargon.
3.  A subtitle "Actionable Next Steps" using '##'. Provide a clear, numbered list of concrete steps the musician should take next.
4.  A subtitle "Creative Tune-Up Suggestions" using '##'. Give creative, specific ideas on how to modify the song to reduce similarity. Focus on musical elements like melody, rhythm, and instrumentation, referencing the high-similarity areas from the stem analysis (vocals and drums).
5.  A subtitle "A Final Note of Encouragement" using '##'. End with a positive and encouraging paragraph. Reassure the musician that this is a common part of the creative process and they have a clear path forward.

Format your entire response strictly in Markdown. Do not include any other text, greetings, or explanations before or after the Markdown report."""


def build_brainstorm_prompt(analysis: Mapping[str, Any], mode: str, theme: Optional[str] = None) -> str:
    stems = analysis.get("stemAnalysis") or {}
    high_similarity_stems = [
        name for name, scores in stems.items() if (scores or {}).get("similarity", 0) > 50
    ]
    overview = analysis.get("overview") or {}
    ai_analysis = analysis.get("aiAnalysis") or {}

    context = (
        f"The user's song has a {overview.get('riskLevel')} risk of copyright issues. "
        f"The overall similarity is {overview.get('overallScore')}%. "
        f"The most similar parts are: {', '.join(high_similarity_stems) or 'N/A'}. "
        f"The AI platform used was likely {ai_analysis.get('platform')}."
    )
    theme_instruction = f' The user wants the ideas to fit a theme of "{theme}".' if theme else ""

    return (
        f"You are a creative songwriting partner. Based on the following musical analysis, "
        f"{BRAINSTORM_INSTRUCTIONS[mode]}{theme_instruction}\n\n"
        "Respond ONLY with a JSON array of strings, one string per idea.\n\n"
        f"Analysis Context:\n{context}"
    )


def parse_idea_list(response_text: str) -> List[str]:
    """Parse a JSON array of strings, optionally wrapped in a ```json block."""
    json_match = response_text.find("```json")
    if json_match != -1:
        start = json_match + 7
        end = response_text.find("```", start)
        json_string = response_text[start:end if end != -1 else None].strip()
    else:
        json_string = response_text.strip()

    try:
        parsed = json.loads(json_string)
    except json.JSONDecodeError as e:
        raise ReportGeneratorError(f"Brainstorm response was not valid JSON: {e}") from e

    if isinstance(parsed, dict) and isinstance(parsed.get("ideas"), list):
        parsed = parsed["ideas"]
    if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
        raise ReportGeneratorError("Brainstorm response was not a list of strings")
    return parsed


def to_chat_messages(
    system_instruction: str, history: Sequence[Mapping[str, Any]], message: str
) -> List[Dict[str, str]]:
    """Convert frontend chat history ('user'/'model' roles) to OpenAI messages."""
    messages = [{"role": "system", "content": system_instruction}]
    for entry in history:
        role = "assistant" if entry.get("role") == "model" else "user"
        messages.append({"role": role, "content": str(entry.get("content", ""))})
    messages.append({"role": "user", "content": message})
    return messages


class ChatStream:
    """
    Text chunks relayed from an upstream streaming completion.

    Call aclose() when the downstream consumer goes away so the upstream
    HTTP response is released.
    """

    def __init__(self, stream: Any):
        self._stream = stream
        self._closed = False

    async def __aiter__(self) -> AsyncIterator[str]:
        async for chunk in self._stream:
            if not chunk.choices:
                continue
            text = chunk.choices[0].delta.content
            if text:
                yield text

    @property
    def closed(self) -> bool:
        return self._closed

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._stream.close()


class ReportGenerator:
    """Gemini (via OpenRouter) client for reports, chat, brainstorming and prompts."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "google/gemini-2.5-flash",
        base_url: str = "https://openrouter.ai/api/v1",
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Args:
            api_key: OpenRouter API key; without one every call raises ReportGeneratorUnavailable
            model: OpenRouter model identifier
            base_url: OpenAI-compatible API base URL
            client: Pre-built client (tests)
        """
        self.model = model
        self.client = client
        if self.client is None and api_key:
            self.client = AsyncOpenAI(
                base_url=base_url,
                api_key=api_key,
                default_headers={
                    "HTTP-Referer": Config.PUBLIC_URL,
                    "X-Title": "MelodyCompare",
                },
            )

    @property
    def configured(self) -> bool:
        return self.client is not None

    def _require_client(self) -> AsyncOpenAI:
        if self.client is None:
            raise ReportGeneratorUnavailable(
                "Generative text API not configured (OPENROUTER_API_KEY required)"
            )
        return self.client

    async def _complete(self, messages: List[Dict[str, str]], **kwargs: Any) -> str:
        client = self._require_client()
        try:
            completion = await client.chat.completions.create(
                model=self.model,
                messages=cast(List[Any], messages),
                **kwargs,
            )
        except OpenAIError as e:
            raise ReportGeneratorError(f"Generative text API call failed: {e}") from e

        if not completion.choices:
            raise ReportGeneratorError("No choices in API response")
        content = completion.choices[0].message.content
        if content is None:
            raise ReportGeneratorError("No content in API response")
        return content

    async def generate_report(
        self,
        analysis: Mapping[str, Any],
        analysis_type: str = "database",
        copyrighted_song_name: str = "",
    ) -> str:
        """Markdown report explaining an analysis to the musician."""
        prompt = build_report_prompt(analysis, analysis_type, copyrighted_song_name)
        return await self._complete([{"role": "user", "content": prompt}])

    async def open_chat_stream(
        self,
        history: Sequence[Mapping[str, Any]],
        message: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> ChatStream:
        """Start a streaming assistant reply; the upstream request is made before returning."""
        client = self._require_client()
        messages = to_chat_messages(system_instruction_for_context(context), history, message)
        try:
            stream = await client.chat.completions.create(
                model=self.model,
                messages=cast(List[Any], messages),
                stream=True,
            )
        except OpenAIError as e:
            raise ReportGeneratorError(f"Generative text stream failed to start: {e}") from e
        return ChatStream(stream)

    async def brainstorm(
        self, analysis: Mapping[str, Any], mode: str, theme: Optional[str] = None
    ) -> List[str]:
        """Creative ideas (titles, lyrics or chord progressions) as a list of strings."""
        prompt = build_brainstorm_prompt(analysis, mode, theme)
        response_text = await self._complete([{"role": "user", "content": prompt}])
        return parse_idea_list(response_text)

    async def enhance_prompt(self, base_prompt: str) -> str:
        return await self._complete(
            [
                {"role": "system", "content": ENHANCE_PROMPT_INSTRUCTION},
                {"role": "user", "content": base_prompt},
            ]
        )


def create_report_generator() -> ReportGenerator:
    if not Config.OPENROUTER_API_KEY:
        logger.warning(
            "OPENROUTER_API_KEY not set - AI reports will use fallback text and chat features will fail"
        )
    return ReportGenerator(
        Config.OPENROUTER_API_KEY,
        model=Config.OPENROUTER_MODEL,
        base_url=Config.OPENROUTER_BASE_URL,
    )
