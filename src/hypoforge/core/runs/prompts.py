"""
Prompt templates for the hypothesis pipeline.

Prompt IDs:
    - DIVERGENT_PROMPT: batch deep research that explores and narrows many
      business hypotheses (run-level divergent phase)
    - RESEARCH_PROMPT: per-hypothesis deep research (phase_B)
    - EVALUATION_PROMPT: adversarial feasibility review (phase_C)
    - COMPETITIVE_PROMPT: competitor catch-up war gaming (phase_D, first half)
    - INTEGRATION_PROMPT: portfolio-level integrated verdict (phase_D, second half)

Placeholders use ``{name}`` and are filled by ``format_prompt``. Unknown
placeholders are left in place so literal braces in templates survive.
"""

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional, Union

# =============================================================================
# Divergent phase
# =============================================================================

DIVERGENT_PROMPT = """[Master prompt] Build new materials-business strategy hypotheses

You are a strategy consultant for a materials manufacturer. Follow the attached
task_instructions document. Use the attached technical_assets and
target_specification documents as your only sources about the company.

Work in two passes:
1. Diverge: list at least three times as many candidate opportunities as
   requested, each tied to a concrete customer trade-off the company's
   technology resolves.
2. Converge: keep the {hypothesis_count} strongest candidates.

Present each kept candidate as

【Hypothesis N】<title>
<summary covering industry, customer pain, where the material is used and
how it resolves the trade-off>

Cite sources and include market size or growth figures where available.
"""

_INSTRUCTION_TEMPLATE = """[Task]
Analyze the technical assets in "technical_assets" and, for the market
described in "target_specification", generate {hypothesis_count} new business
hypotheses in light of current trends.

[Required elements per hypothesis]
1. Title: specific and easy to understand
2. Industry and field
3. Business hypothesis summary
4. The customer's unsolvable problem: the physical trade-off conventional
   technology could not resolve
5. Where the material plays its role
6. How the material resolves the trade-off

[Conditions]
1. High technical feasibility
2. Growing market
3. A niche competitors have not yet entered
{extra_conditions}
[Important]
- State the sources and evidence you relied on
- Include concrete market size and growth figures where available
- Explain why the technical assets give a competitive advantage{exclusion_section}"""

# =============================================================================
# Per-hypothesis phases
# =============================================================================

RESEARCH_PROMPT = """[Task] Following the attached task_instructions, write a detailed
research report on the hypothesis described in the hypothesis_context file.

Technical asset information is in the technical_assets file.
Market information is in the target_specification file.
"""

EVALUATION_PROMPT = """# System directive: new materials business evaluation (Kill-Switch review)

You are a skeptical technical due-diligence reviewer. Your job is to find the
reason this hypothesis fails before money is spent on it.

Evaluate the hypothesis below on:
1. Physical and technical feasibility of the claimed trade-off resolution
2. Whether the customer pain is real, urgent and budgeted
3. Substitutes that already solve the problem well enough
4. Regulatory, supply-chain or scale-up blockers

For each criterion give a verdict (PASS / CONCERN / KILL) with evidence.
Finish with an overall verdict and the single most important open risk.

{context}
"""

COMPETITIVE_PROMPT = """# System directive: competitor catch-up assessment (War Gaming mode)

Assume the strongest incumbent learns of this business today. Using the
research and the evaluation below:
1. Identify the three competitors best placed to respond
2. Estimate how many months each would need to reach parity
3. Name the assets (patents, process know-how, customer lock-in) that slow them
4. Recommend moves that widen the lead during that window

{context}

=== Evaluation ===
{evaluation}
"""

INTEGRATION_PROMPT = """# System directive: integrated business assessment (Portfolio Optimizer)

Combine the research, evaluation and competitive assessment below into one
decision memo:
- One-paragraph executive summary
- Attractiveness score (1-10) and feasibility score (1-10), each justified
- Go / Conditional go / No-go recommendation with the conditions to revisit

{context}

=== Evaluation ===
{evaluation}

=== Competitive assessment ===
{competitive}
"""


def format_prompt(template: str, replacements: Mapping[str, Union[str, int]]) -> str:
    """Replace ``{key}`` placeholders in ``template``."""
    result = template
    for key, value in replacements.items():
        result = result.replace(f"{{{key}}}", str(value))
    return result


def build_instruction_document(
    hypothesis_count: int,
    *,
    has_previous: bool = False,
    existing: Optional[Iterable[Dict[str, str]]] = None,
) -> str:
    """Build the task_instructions attachment for the divergent phase.

    Args:
        hypothesis_count: Number of hypotheses to request
        has_previous: Whether earlier loops of this job produced hypotheses
        existing: ``{"title", "summary"}`` entries the model must not repeat
    """
    existing = list(existing or [])

    conditions = []
    if has_previous:
        conditions.append("4. Do not overlap with previously generated hypotheses (see previous_hypotheses)")
    if existing:
        conditions.append("5. [Important] Do not resemble or duplicate the existing hypotheses listed below")
    extra_conditions = "\n".join(conditions) + ("\n" if conditions else "")

    exclusion_section = ""
    if existing:
        exclusion_list = "\n".join(
            f"{i}. {h['title']}: {h.get('summary', '')[:100]}..." for i, h in enumerate(existing, start=1)
        )
        exclusion_section = (
            "\n\n[Existing hypotheses to exclude]\n"
            "The following hypotheses were already generated. Do not produce similar or duplicate ones:\n"
            f"{exclusion_list}"
        )

    return format_prompt(
        _INSTRUCTION_TEMPLATE,
        {
            "hypothesis_count": hypothesis_count,
            "extra_conditions": extra_conditions,
            "exclusion_section": exclusion_section,
        },
    )


def build_hypothesis_context(
    *,
    title: str,
    hypothesis_id: str,
    summary: Optional[str],
    research_output: Optional[str],
    target_specification: str,
    technical_assets: str,
) -> str:
    """Assemble the per-hypothesis context block shared by later phases."""
    return f"""
=== Hypothesis ===
Title: {title or ''}
ID: {hypothesis_id}

=== Hypothesis summary (divergent phase) ===
{summary or ''}

=== Detailed research report ===
{research_output or ''}

=== Market and customer needs ===
{target_specification}

=== Technical assets ===
{technical_assets}
"""
