"""
Natural-language stencil commands to structured modification commands.

The remote backend is the Anthropic Messages API, called directly via
requests. API key: set ANTHROPIC_API_KEY env var or pass via
InterpreterConfig. Without a key, or on any remote failure, the deterministic
keyword parser answers instead, so interpretation always yields a command.
"""
import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from modification_engine import ACTIONS, ModificationCommand

logger = logging.getLogger(__name__)

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_PERCENT = re.compile(r"(\d+(?:\.\d+)?)\s*%")
_MM = re.compile(r"(\d+(?:\.\d+)?)\s*mm")
_MIL = re.compile(r"(\d+(?:\.\d+)?)\s*mil")
_GRID = re.compile(r"(\d+)\s*x\s*(\d+)")
_WORD = re.compile(r"[a-z]+")


class InterpreterError(Exception):
    """Base exception for remote interpretation errors."""
    pass


class InterpreterAPIError(InterpreterError):
    """API returned an error status."""
    pass


class InterpreterResponseError(InterpreterError):
    """API answered but the answer holds no usable command."""
    pass


@dataclass
class InterpreterConfig:
    """Configuration for the remote interpreter."""
    api_key: Optional[str] = field(default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY"))
    api_url: str = ANTHROPIC_MESSAGES_URL
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 500
    timeout_seconds: float = 30.0


@dataclass
class InterpretResult:
    command: ModificationCommand
    source: str  # "ai" or "local"
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "source": self.source, "command": self.command.to_dict()}


SYSTEM_PROMPT = """You are a stencil editing assistant for SMT (Surface Mount Technology) manufacturing.
You interpret natural language commands and convert them to structured JSON commands.

Available actions:
- reduce: Reduce pad size by percentage or absolute amount per side
- enlarge: Increase pad size by percentage or absolute amount per side
- windowPane: Split large pads into a grid of smaller openings
- cornerRadius: Add rounded corners to pads
- delete: Remove pads
- reset: Restore pads to their original size
- modifyFids: Change fiducial size and/or shape (use this for any command about fiducials/fids)

Available targets:
- all: All pads
- selected: Only selected pads
- thermal: Thermal pads (large and medium)
- largeThermal: Only pads large enough for window panes
- tooSmall: Pads below the printable width
- finePitch: Fine pitch leads (high aspect ratio, narrow)
- circles: Round pads only
- rectangles: Rectangular pads only

Units: %, mm, mil (thousandths of inch)

Current board statistics:
{stats}

Respond ONLY with valid JSON matching this schema:
{{
  "action": "reduce|enlarge|windowPane|cornerRadius|delete|reset|modifyFids",
  "target": "all|selected|thermal|largeThermal|tooSmall|finePitch|circles|rectangles",
  "value": <number>,
  "unit": "%|mm|mil",
  "selectedOnly": <boolean>,
  "windowPane": {{"rows": <int>, "cols": <int>, "reduction": <number>}},
  "fidSize": <number>,
  "fidUnit": "mil|mm|in",
  "fidShape": "circle|rect",
  "explanation": "<brief explanation of what this will do>"
}}

Examples:
"reduce all pads by 10%" -> {{"action":"reduce","target":"all","value":10,"unit":"%","explanation":"Reducing all pads by 10%"}}
"add 2x2 window panes to thermal pads" -> {{"action":"windowPane","target":"thermal","windowPane":{{"rows":2,"cols":2,"reduction":0}},"explanation":"Adding 2x2 window panes to thermal pads"}}
"shrink fine pitch leads by 0.05mm" -> {{"action":"reduce","target":"finePitch","value":0.05,"unit":"mm","explanation":"Reducing fine pitch leads by 0.05mm"}}
"make fiducials 1mm squares" -> {{"action":"modifyFids","fidSize":1,"fidUnit":"mm","fidShape":"rect","explanation":"Changing fiducials to 1mm square"}}"""


def interpret_command(
    prompt: str,
    stats: Optional[Dict[str, Any]] = None,
    config: Optional[InterpreterConfig] = None,
    use_remote: bool = True,
) -> InterpretResult:
    """Turn a free-text instruction into a ``ModificationCommand``.

    Args:
        prompt: The user's instruction.
        stats: Board statistics included in the remote prompt.
        config: Remote backend settings; defaults read the environment.
        use_remote: Set False to skip the remote backend entirely.

    Returns:
        The interpreted command and whether it came from the remote
        backend (``ai``) or the keyword parser (``local``).
    """
    if config is None:
        config = InterpreterConfig()
    if not use_remote:
        return local_parse_command(prompt)
    if not config.api_key:
        logger.info("No API key, using local parser")
        return local_parse_command(prompt)

    try:
        command = _remote_command(prompt, stats or {}, config)
    except (
        requests.RequestException, InterpreterError,
        ValueError, KeyError, IndexError, TypeError, AttributeError,
    ) as e:
        logger.warning("Remote interpretation failed, using local parser: %s", e)
        return local_parse_command(prompt)
    return InterpretResult(command=command, source="ai")


def _remote_command(prompt: str, stats: Dict[str, Any], config: InterpreterConfig) -> ModificationCommand:
    payload = {
        "model": config.model,
        "max_tokens": config.max_tokens,
        "system": SYSTEM_PROMPT.format(stats=json.dumps(stats, indent=2, default=str)),
        "messages": [{"role": "user", "content": prompt}],
    }
    headers = {
        "Content-Type": "application/json",
        "x-api-key": config.api_key,
        "anthropic-version": ANTHROPIC_VERSION,
    }
    logger.info("Interpreting command remotely: %s", prompt)
    resp = requests.post(config.api_url, json=payload, headers=headers, timeout=config.timeout_seconds)
    _check_response(resp)

    body = resp.json()
    if not isinstance(body, dict):
        raise InterpreterResponseError(f"Response body is {type(body).__name__}, expected an object")
    content = body.get("content") or []
    if not isinstance(content, list) or (content and not isinstance(content[0], dict)):
        raise InterpreterResponseError("Response content is not a list of blocks")
    text = content[0].get("text", "") if content else ""
    if not isinstance(text, str):
        raise InterpreterResponseError("Response text block is not a string")
    logger.debug("Remote response: %s", text)

    match = _JSON_OBJECT.search(text)
    if not match:
        raise InterpreterResponseError("No JSON object in response")
    command = ModificationCommand.from_dict(json.loads(match.group(0)))
    if command.action not in ACTIONS:
        raise InterpreterResponseError(f"Unknown action {command.action!r}")
    return command


def _check_response(resp) -> None:
    """Check HTTP response for errors."""
    if resp.status_code in (401, 403):
        raise InterpreterAPIError(f"Authentication failed ({resp.status_code})")
    if resp.status_code >= 400:
        raise InterpreterAPIError(f"API error {resp.status_code}: {resp.text[:200]}")


# ─── Local keyword parser ───────────────────────────────────────────────────


def local_parse_command(prompt: str) -> InterpretResult:
    """Deterministic keyword interpretation; never fails.

    Unrecognised text becomes ``reduce all by 10%``.
    """
    text = prompt.lower().strip()

    if "fid" in text and any(k in text for k in ("mil", "mm", "change", "make", "set")):
        return InterpretResult(command=_fiducial_command(text), source="local")

    action = _detect_action(text)
    target, selected_only = _detect_target(text)

    percent = _PERCENT.search(text)
    mm = _MM.search(text)
    mil = _MIL.search(text)
    if percent:
        value, unit = float(percent.group(1)), "%"
    elif mm:
        value, unit = float(mm.group(1)), "mm"
    elif mil:
        value, unit = float(mil.group(1)), "mil"
    else:
        value, unit = 10.0, "%"

    window_pane = None
    if action == "windowPane":
        grid = _GRID.search(text)
        reduction = value if percent else 0.0
        window_pane = {
            "rows": int(grid.group(1)) if grid else 2,
            "cols": int(grid.group(2)) if grid else 2,
            "reduction": reduction,
        }
        value, unit = reduction, "%"
    elif action == "cornerRadius" and not mm and not mil:
        value, unit = 0.1, "mm"
    elif action in ("delete", "reset"):
        value, unit = 0.0, "%"

    explanation = f"{action} on {target} pads"
    if value:
        explanation += f" by {value:g}{unit}"

    command = ModificationCommand.from_dict({
        "action": action,
        "target": target,
        "value": value,
        "unit": unit,
        "selectedOnly": selected_only,
        "windowPane": window_pane,
        "explanation": explanation,
    })
    logger.debug("Local parse of %r: %s", prompt, command.to_dict())
    return InterpretResult(command=command, source="local")


def _fiducial_command(text: str) -> ModificationCommand:
    mil = _MIL.search(text)
    mm = _MM.search(text)
    if mil:
        size, unit = float(mil.group(1)), "mil"
    elif mm:
        size, unit = float(mm.group(1)), "mm"
    else:
        size, unit = 40.0, "mil"

    shape = "circle"
    if "square" in text or "rect" in text:
        shape = "rect"
    if "round" in text or "circle" in text:
        shape = "circle"

    return ModificationCommand(
        action="modifyFids",
        target="all",
        value=0.0,
        fid_size=size,
        fid_unit=unit,
        fid_shape=shape,
        explanation=f"Changing fiducials to {size:g}{unit} {'rounds' if shape == 'circle' else 'squares'}",
    )


def _detect_action(text: str) -> str:
    if "delete" in text or "remove" in text:
        return "delete"
    if any(k in text for k in ("reset", "restore", "undo", "revert")):
        return "reset"
    if "window" in text or "pane" in text or _GRID.search(text):
        return "windowPane"
    if "radius" in text or "corner" in text:
        return "cornerRadius"
    if any(k in text for k in ("increase", "grow", "expand", "enlarge", "scale up")):
        return "enlarge"
    return "reduce"


def _detect_target(text: str):
    words = set(_WORD.findall(text))
    if "selected" in text or "selection" in text:
        return "selected", True
    if "thermal" in text or words & {"large", "big", "larger", "bigger"}:
        return "thermal", False
    if any(k in text for k in ("fine", "pitch", "lead", "qfp", "soic")):
        return "finePitch", False
    if "circle" in text or "round pad" in text:
        return "circles", False
    if "rect" in text or "square" in text:
        return "rectangles", False
    return "all", False
