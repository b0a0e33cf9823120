"""
Versioned prompt templates for the extraction pipeline.

Prompt files live in llm/prompts/<name>.txt with a frontmatter header:
```
# PROMPT: park_page_text
# VERSION: 1.0.0
# LAST_UPDATED: 2026-10-19
# DESCRIPTION: Brief description
# ---PROMPT_START---
[template, with {placeholders} for str.format]
```

The content hash covers the template below the separator only, so a content
change without a version bump is detectable (PROMPT_VERSION_CHECK = warn |
strict | off).

Usage:
    from park_facts.llm.prompt_loader import render_prompt

    prompt = render_prompt("park_page_text", park_name="Yellowstone", reference_url=url)
"""

import hashlib
import logging
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent / "prompts"

_SEPARATOR = re.compile(r"^#\s*---PROMPT_START---\s*$", re.MULTILINE)
_HEADER_LINE = re.compile(r"^#\s*(\w+):\s*(.+)$")

# {prompt_name: {version: content_hash}}
_version_hashes: Dict[str, Dict[str, str]] = {}


@dataclass(frozen=True)
class PromptInfo:
    """Loaded prompt template with metadata."""

    name: str
    version: str
    content: str
    content_hash: str
    last_updated: Optional[str] = None
    description: Optional[str] = None

    def render(self, **values: object) -> str:
        return self.content.format(**values)


def _content_hash(content: str) -> str:
    return hashlib.sha256(content.strip().encode()).hexdigest()[:16]


def _split_frontmatter(text: str) -> tuple[Dict[str, str], str]:
    match = _SEPARATOR.search(text)
    if not match:
        return {}, text.strip()

    metadata = {}
    for line in text[: match.start()].strip().splitlines():
        header = _HEADER_LINE.match(line.strip())
        if header:
            metadata[header.group(1).lower()] = header.group(2).strip()
    return metadata, text[match.end() :].strip()


def _check_version(name: str, version: str, content_hash: str) -> None:
    mode = os.environ.get("PROMPT_VERSION_CHECK", "warn")
    if mode == "off":
        return

    known = _version_hashes.setdefault(name, {})
    if version in known and known[version] != content_hash:
        msg = (
            f"Prompt '{name}' content changed but version still {version}. "
            f"Expected hash {known[version][:8]}..., got {content_hash[:8]}... Consider bumping the version."
        )
        if mode == "strict":
            raise ValueError(msg)
        logger.warning(msg)
    known[version] = content_hash


def load_prompt(name: str, prompts_dir: Optional[Path] = None) -> PromptInfo:
    """
    Load a prompt template.

    Args:
        name: Prompt name (file stem)
        prompts_dir: Optional custom directory (defaults to llm/prompts)

    Raises:
        FileNotFoundError: If the prompt file doesn't exist
        ValueError: In strict mode, if content changed without a version bump
    """
    file_path = (prompts_dir or PROMPTS_DIR) / f"{name}.txt"
    if not file_path.exists():
        raise FileNotFoundError(f"Prompt file not found: {file_path}")

    metadata, content = _split_frontmatter(file_path.read_text(encoding="utf-8"))
    version = metadata.get("version", "0.0.0")
    content_hash = _content_hash(content)
    _check_version(name, version, content_hash)

    return PromptInfo(
        name=name,
        version=version,
        content=content,
        content_hash=content_hash,
        last_updated=metadata.get("last_updated"),
        description=metadata.get("description"),
    )


@lru_cache(maxsize=None)
def _cached_prompt(name: str) -> PromptInfo:
    return load_prompt(name)


def render_prompt(name: str, **values: object) -> str:
    """Load (cached) and format a prompt from the default directory."""
    return _cached_prompt(name).render(**values)


def list_prompts(prompts_dir: Optional[Path] = None) -> list[PromptInfo]:
    """All prompts in a directory, sorted by name."""
    prompts = []
    for file_path in sorted((prompts_dir or PROMPTS_DIR).glob("*.txt")):
        try:
            prompts.append(load_prompt(file_path.stem, prompts_dir))
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load prompt {file_path.stem}: {e}")
    return prompts
