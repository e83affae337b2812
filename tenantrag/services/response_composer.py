"""Prompt assembly and answer generation for chat agents.

The system prompt has three parts:

1. a role preamble naming the agent (and its designated role, if any);
2. five fixed core directives that confine answers to the supplied
   CONTEXT, including the two exact refusal phrases;
3. a persona block selected by the agent's personality tag.

The user turn wraps the retrieved context and the question into a single
prompt; the agent answers in one generation call with no chat history.
"""

from __future__ import annotations

import structlog
from pydantic import BaseModel, ConfigDict

from tenantrag.interfaces.llm_provider import ILLMProvider
from tenantrag.utils.errors import GenerationError, GenerationReason

logger = structlog.get_logger(logger_name=__name__)

REFUSAL_PHRASES = (
    "I'm sorry, I don't have the information needed to answer that question.",
    "I can't find the answer to your question in the information I have.",
)

_CORE_DIRECTIVES = """\
**Your Core Directives:**

1.  **Primary Rule:** Your responses MUST be based *exclusively* on the information provided in the "CONTEXT" section of the prompt. Do not access or use any external knowledge, data from previous training, or information from outside the given CONTEXT.
2.  **Handling Missing Information:** If the user's question cannot be answered using the provided CONTEXT, you must respond with one of the following phrases: "{refusal_one}" or "{refusal_two}" DO NOT attempt to guess or invent an answer.
3.  **Identity and Persona:** You must consistently maintain the persona of {name}. Do not reveal that you are an AI, a language model, or a chatbot.
4.  **Brevity:** Provide concise and direct answers. Avoid unnecessary conversational filler unless your persona explicitly requires it.
5.  **Contextual Awareness:** The user is asking a question. Your task is to find the answer in the CONTEXT. The user's message is the question.
"""

_PERSONAS: dict[str, str] = {
    "professional": """\
**Persona Instructions: Professional**
- **Tone:** Maintain a formal, objective, and business-like tone.
- **Language:** Use precise, professional language. Avoid slang, contractions, and overly casual expressions.
- **Interaction Style:** Be direct and efficient. Your goal is to deliver information clearly and accurately.
- **Example:** Instead of "Hey! I think...", say "Based on the provided context...".
""",
    "friendly": """\
**Persona Instructions: Friendly**
- **Tone:** Be warm, approachable, and empathetic.
- **Language:** Use a conversational, positive, and encouraging tone. Contractions (e.g., "you're", "it's") are appropriate.
- **Interaction Style:** Engage the user in a welcoming manner. Make them feel supported and understood.
- **Example:** "Hi there! I'd be happy to help with that. Looking at the information, it seems that...".
""",
    "casual": """\
**Persona Instructions: Casual**
- **Tone:** Be relaxed, informal, and easy-going.
- **Language:** Use everyday language. A conversational and less structured style is preferred.
- **Interaction Style:** Be relatable and personable.
- **Example:** "Hey, so about your question... It looks like...".
""",
    "technical": """\
**Persona Instructions: Technical Expert**
- **Tone:** Be precise, authoritative, and informative.
- **Language:** Use correct technical terminology. When explaining complex topics, break them down for clarity. Use formatting like lists or bullet points to structure your response.
- **Interaction Style:** Your goal is to provide comprehensive and accurate technical explanations.
- **Example:** "The system's architecture is composed of three primary layers: The presentation layer, the business logic layer, and the data access layer. Let's examine each one.".
""",
    "formal": """\
**Persona Instructions: Formal**
- **Tone:** Maintain a highly formal, respectful, and polite tone.
- **Language:** Use sophisticated vocabulary and impeccable grammar. Avoid all contractions and colloquialisms.
- **Interaction Style:** Adhere to the highest standards of professional decorum.
- **Example:** "Greetings. In reference to your inquiry, the provided documentation indicates that...".
""",
}

_DEFAULT_PERSONA = """\
**Persona Instructions: Helpful Assistant**
- **Tone:** Be neutral, helpful, and direct.
- **Language:** Use clear, simple, and easy-to-understand language.
- **Interaction Style:** Answer the user's questions directly using the provided context without extra conversational fluff.
"""

_USER_PROMPT = (
    "Context:\n{context}\n\n"
    "User Question: {question}\n\n"
    "Please provide a helpful and accurate response based on the context provided above. "
    "If the answer is not found in the context, politely say that you don't have enough "
    "information to answer that specific question."
)


def persona_block(personality: str | None) -> str:
    """Return the persona instructions for *personality* (case-insensitive)."""
    return _PERSONAS.get((personality or "").strip().lower(), _DEFAULT_PERSONA)


class ComposedPrompt(BaseModel):
    """The system and user halves of one single-turn generation prompt."""

    model_config = ConfigDict(frozen=True)

    system_prompt: str
    user_prompt: str


class ResponseComposer:
    """Builds persona-conditioned prompts and calls the generative model."""

    def __init__(
        self,
        llm_provider: ILLMProvider,
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ) -> None:
        self._llm = llm_provider
        self._temperature = temperature
        self._max_tokens = max_tokens

    @classmethod
    def compose(
        cls,
        question: str,
        context: str,
        personality: str | None,
        agent_name: str,
        agent_description: str | None = None,
    ) -> ComposedPrompt:
        """Assemble the prompt for one question against retrieved *context*.

        The persona-conditioned instructions go into the system prompt;
        the context and the question go into the user prompt only.
        """
        return ComposedPrompt(
            system_prompt=cls.build_system_prompt(personality, agent_name, agent_description),
            user_prompt=cls.build_user_prompt(question, context),
        )

    @staticmethod
    def build_system_prompt(
        personality: str | None,
        agent_name: str,
        agent_description: str | None = None,
    ) -> str:
        role = f"You are {agent_name}, an AI assistant. "
        if agent_description:
            role += f'Your designated role is: "{agent_description}".'
        core = _CORE_DIRECTIVES.format(
            name=agent_name,
            refusal_one=REFUSAL_PHRASES[0],
            refusal_two=REFUSAL_PHRASES[1],
        )
        return f"{role}\n\n{core}\n{persona_block(personality)}"

    @staticmethod
    def build_user_prompt(question: str, context: str) -> str:
        return _USER_PROMPT.format(context=context, question=question)

    async def generate(
        self,
        question: str,
        context: str,
        personality: str | None,
        agent_name: str,
        agent_description: str | None = None,
    ) -> str:
        """Compose the prompts and return the model's answer.

        Raises
        ------
        GenerationError
            ``EMPTY_GENERATION`` when the model returns no text; provider
            failures keep the reason assigned by the LLM adapter.
        """
        prompt = self.compose(question, context, personality, agent_name, agent_description)

        answer = await self._llm.complete(
            system_prompt=prompt.system_prompt,
            user_prompt=prompt.user_prompt,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        if not answer or not answer.strip():
            raise GenerationError(
                message="No response generated",
                reason=GenerationReason.EMPTY_GENERATION,
                provider_name=self._llm.get_provider_name(),
            )

        logger.info(
            "response_generated",
            provider=self._llm.get_provider_name(),
            agent_name=agent_name,
            personality=personality,
            answer_chars=len(answer),
        )
        return answer.strip()
