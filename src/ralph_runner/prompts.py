"""Render the agent prompt and the command line that carries it."""

from __future__ import annotations

import shlex

from .constants import DEFAULT_PROMPT
from .models import LoopOptions


def _substitute(text: str, values: dict[str, str]) -> str:
    # Plain replacement so literal braces in user prompts survive.
    for key, value in values.items():
        text = text.replace("{" + key + "}", value)
    return text


def render_prompt(template: str, plan_file: str, model: str = "") -> str:
    """Fill `{plan}` (and `{model}`) in a prompt template.

    Args:
        template: Prompt template; an empty template selects the default prompt.
        plan_file: Plan path as given by the user.
        model: Model identifier passed to the agent.

    Returns:
        The prompt text sent to the agent.
    """
    return _substitute(template or DEFAULT_PROMPT, {"plan": plan_file, "model": model})


def build_agent_command(command_template: str, prompt: str, model: str, plan_file: str) -> list[str]:
    """Split the agent command template and fill placeholders per argument.

    The template is tokenized before substitution so the prompt stays a
    single argument no matter what it contains. A template without
    `{prompt}` gets the prompt appended as the final argument.

    Raises:
        ValueError: If the template is empty or cannot be tokenized.
    """
    parts = shlex.split(command_template)
    if not parts:
        raise ValueError("Agent command template is empty")
    values = {"prompt": prompt, "model": model, "plan": plan_file}
    command = [_substitute(part, values) for part in parts]
    if "{prompt}" not in command_template:
        command.append(prompt)
    return command


def build_iteration_command(options: LoopOptions) -> list[str]:
    prompt = render_prompt(options.prompt, options.plan_file, options.model)
    return build_agent_command(options.agent_command, prompt, options.model, options.plan_file)
