"""
Instruction template synthesis.

The model turns a user's request (legacy prompt or processing rule) into
one instruction that will be sent once per file, with a placeholder where
the file mention goes.
"""

from enum import Enum
from typing import Optional, Protocol

from llm import call_with_retry
from shared.logging import get_logger

log = get_logger("batch", "templates")

RULE_PLACEHOLDER = "{{file}}"
LEGACY_PLACEHOLDER = "{filePath}"
RULE_LEAD_IN = f"Apply the following processing to {RULE_PLACEHOLDER}: "

PREVIEW_FILES = 10

LEGACY_SYSTEM_PROMPT = (
    "You are a task planning assistant. You help users write clear, "
    "concise instruction templates for batch processing."
)

RULE_SYSTEM_PROMPT = (
    "You are an instruction template writer. You turn a user's short "
    "processing rule into a specific, clear, actionable instruction "
    "template. Your output must contain the {{file}} placeholder (double "
    "braces). Output only the template itself, with no explanation, "
    "quotes or extra text."
)


class TemplateMode(str, Enum):
    RULE = "rule"
    LEGACY = "legacy"


class CompletionTransport(Protocol):
    async def complete(self, config: dict, prompt: str,
                       system_prompt: Optional[str] = None,
                       options: Optional[dict] = None) -> str: ...


def placeholder_for(mode: TemplateMode) -> str:
    return RULE_PLACEHOLDER if mode == TemplateMode.RULE else LEGACY_PLACEHOLDER


def _file_preview(files: list[str]) -> str:
    lines = list(files[:PREVIEW_FILES])
    if len(files) > PREVIEW_FILES:
        lines.append("")
        lines.append(f"... and {len(files) - PREVIEW_FILES} more files")
    return "\n".join(lines)


def build_legacy_prompt(user_prompt: str, files: list[str]) -> str:
    return f"""I need to batch-process the files listed below. Write a reusable instruction template for my request.

Request: {user_prompt}

Files ({len(files)} in total):
{_file_preview(files)}

Write one instruction template that will be applied to each file. Use {LEGACY_PLACEHOLDER} as the placeholder for the file path.

Requirements:
1. Keep the instruction short and unambiguous
2. It must work for batch processing
3. Preserve the core intent of the original request

Output only the template, with no other explanation."""


def build_rule_prompt(processing_rule: str, files: list[str]) -> str:
    return f"""Processing rule: {processing_rule}

Files to process ({len(files)} in total):
{_file_preview(files)}

Turn the processing rule above into a specific, actionable instruction template. The template will be applied to each of the files above.

Requirements:
1. The template must contain the {RULE_PLACEHOLDER} placeholder (double braces)
2. {RULE_PLACEHOLDER} will be replaced by the actual file path
3. The instruction must be specific enough for an AI assistant to act on directly

Examples:
Good: "Add docstrings to every exported function in {RULE_PLACEHOLDER}, describing parameters, return values and usage"
Good: "Review {RULE_PLACEHOLDER} for unused imports, redundant code and performance problems, and suggest fixes"
Good: "Replace every print() call in {RULE_PLACEHOLDER} with logger.debug, keeping the message unchanged"
Bad: "Improve the code" (too vague, no {RULE_PLACEHOLDER} placeholder)

Notes:
- Always include the {RULE_PLACEHOLDER} placeholder (double braces, not single)
- If the rule is terse, expand it so the assistant understands it
- If the rule is already specific, keep it but make sure {RULE_PLACEHOLDER} is present

Output exactly one instruction template, with no explanation, quotes or anything else."""


def build_discovery_instruction(discovery_rule: str, project_root: str) -> str:
    """Instruction for the agent task that finds the files to process."""
    return f"""Your task is to find the files in this project that match the rule below.

Discovery rule: {discovery_rule}

Project root: {project_root}

Analyse the project structure and find every file that matches the rule. Finally, return the file paths (relative to the project root) as a JSON array.

Example output:
```json
[
  "src/components/Button.tsx",
  "src/components/Input.tsx",
  "src/utils/helpers.ts"
]
```

Important:
1. Paths must be relative to the project root
2. Only return files that actually exist
3. The answer must end with a JSON array of file paths"""


class TemplateSynthesizer:
    """
    Produces the per-file instruction template.

    synthesize() never raises: a failed completion falls back to a
    deterministic template, so a run is never lost to a flaky model.
    """

    def __init__(
        self,
        transport: CompletionTransport,
        api_config: Optional[dict] = None,
        options: Optional[dict] = None,
        max_retries: int = 3,
        initial_delay: float = 1.0,
    ):
        self.transport = transport
        self.api_config = api_config or {}
        self.options = options or {}
        self.max_retries = max_retries
        self.initial_delay = initial_delay

    async def synthesize(self, rule_or_prompt: str, files: list[str], mode: TemplateMode) -> str:
        if mode == TemplateMode.RULE:
            prompt = build_rule_prompt(rule_or_prompt, files)
            system_prompt = RULE_SYSTEM_PROMPT
        else:
            prompt = build_legacy_prompt(rule_or_prompt, files)
            system_prompt = LEGACY_SYSTEM_PROMPT

        try:
            generated = await call_with_retry(
                lambda: self.transport.complete(self.api_config, prompt, system_prompt, self.options),
                max_retries=self.max_retries,
                initial_delay=self.initial_delay,
                label=f"template.{mode.value}",
            )
        except Exception as e:
            fallback = self.fallback(rule_or_prompt, mode)
            log.warning("batch.templates.fallback",
                        mode=mode.value,
                        error=str(e),
                        template=fallback)
            return fallback

        template = (generated or "").strip()

        if mode == TemplateMode.RULE and placeholder_for(mode) not in template:
            log.warning("batch.templates.missing_placeholder", template=template)
            template = RULE_LEAD_IN + template

        log.info("batch.templates.generated", mode=mode.value, template=template)
        return template

    @staticmethod
    def fallback(rule_or_prompt: str, mode: TemplateMode) -> str:
        if mode == TemplateMode.RULE:
            return RULE_LEAD_IN + rule_or_prompt
        return rule_or_prompt
