"""
Input classification: rule mode vs. legacy mode.

Rule mode input carries two marker lines:

    # find every TypeScript file under src/services
    $ add a module docstring

Anything else is a legacy prompt, used verbatim.
"""

from batch.models import ParsedRules

DISCOVERY_MARKER = "#"
PROCESSING_MARKER = "$"


def parse_rules(text: str) -> ParsedRules:
    """Classify `text`. Never raises."""
    lines = [line.strip() for line in text.split("\n")]

    discovery_line = next((l for l in lines if l.startswith(DISCOVERY_MARKER)), None)
    processing_line = next((l for l in lines if l.startswith(PROCESSING_MARKER)), None)

    if discovery_line is not None and processing_line is not None:
        return ParsedRules(
            is_rule_mode=True,
            discovery_rule=discovery_line[len(DISCOVERY_MARKER):].strip(),
            processing_rule=processing_line[len(PROCESSING_MARKER):].strip(),
        )

    return ParsedRules(is_rule_mode=False, original_prompt=text)
