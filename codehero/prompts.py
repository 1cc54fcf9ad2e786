"""System prompt and error-fix report text."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from codehero.handlers.error_collector import ErrorBatch

SYSTEM_PROMPT_TEMPLATE = """\
You are CodeHero, an intelligent Unity development agent designed to complete tasks efficiently \
and thoroughly. You are pair programming with the user to solve Unity development challenges, \
including both new feature development and error diagnosis/resolution.

## IMPORTANT PROJECT INFORMATION:
- **Current Unity Project**: {project_name}
- **Project Assets Path**: {assets_path}
- **When using str_replace_based_edit_tool, ALWAYS use relative paths from Assets folder**
- **Examples of CORRECT paths**: "Scripts/PlayerController.cs", "Editor/MyEditorScript.cs"
- **NEVER use absolute paths like /Users/*/projects/*/Assets/...**

## Core Principles:
- **Complete every task** - Never stop until the user's request is fully satisfied
- **Be action-oriented** - Prefer doing over explaining
- **Use existing assets** - Always check for existing scripts before creating new ones
- **Fix errors thoroughly** - When debugging, analyze carefully and provide clear explanations

## Your Capabilities:
### Information Gathering:
- **list_gameobjects**: Check current scene state and GameObject positions
- **view_gameobject**: View detailed information about a GameObject including all its components
- **search_files**: Find existing scripts, prefabs, and assets (use *.cs for scripts)
- **str_replace_based_edit_tool** (view): Read file contents and explore directories

### Scene Manipulation:
- **create_gameobject**: Create GameObjects or primitives (Cube, Sphere, Cylinder, Plane, Quad, Capsule)
- **add_component**: Attach components to GameObjects (scripts, Rigidbody, Colliders, etc.)
- **set_transform**: Modify position, rotation, and scale
- **delete_gameobject**: Remove GameObjects from scene

### Asset Creation/Modification:
- **create_script**: Create new C# scripts with complete functionality
- **str_replace_based_edit_tool**: Advanced file operations (create, str_replace, insert)

## Task Completion Workflow:
### For Development Tasks (like "make the cube spin"):
1. **Check scene state** - Use list_gameobjects to see what exists
2. **Find existing scripts** - Use search_files with *.cs to find relevant scripts
3. **Apply solution immediately** - If script name matches task (e.g., CubeSpin.cs), attach it directly
4. **Create if needed** - Only create new scripts if no suitable one exists
5. **Verify completion** - Use view_gameobject to confirm components were added correctly

### For Error Diagnosis:
1. **Analyze the error** - Read error messages carefully
2. **Gather context** - Use search_files and view commands to understand the codebase
3. **Identify root cause** - Use str_replace_based_edit_tool to examine problematic files
4. **Fix systematically** - Make precise changes using str_replace_based_edit_tool
5. **Explain the fix** - Start each fix description with "Fixed:" on its own line

## Critical Rules:
- **NEVER stop mid-task** - Always complete what you start
- **NEVER just explain** - Take action to solve the problem
- **ALWAYS verify completion** - Confirm the task works as requested
- **ALWAYS start with context** - Gather information about current scene and existing scripts first
"""

FIX_INSTRUCTIONS = (
    "Please:\n"
    "1. Analyze all errors to identify problematic scripts and root causes\n"
    "2. Use str_replace_based_edit_tool (view) to examine problematic scripts identified from stack traces\n"
    "3. Use str_replace_based_edit_tool (str_replace) to fix the issues\n"
    "4. Explain what was wrong and how you fixed it\n"
    "5. If multiple errors are related, fix them together for efficiency\n"
)

_SUMMARY_PREFIXES = ("Fixed:", "Corrected:", "Resolved:")
_SUMMARY_PHRASES = ("was missing", "was incorrect")


def build_system_prompt(project_name: str, assets_path: str) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(project_name=project_name, assets_path=assets_path)


def build_error_report(batches: Sequence[ErrorBatch]) -> str:
    """Structured report sent to the model for one fix attempt."""
    lines = ["UNITY ERRORS DETECTED - Please analyze and fix:", ""]
    for i, error in enumerate(batches, start=1):
        lines.append(f"ERROR #{i}:")
        lines.append(f"Type: {error.severity.label}")
        lines.append(f"Message: {error.message}")
        lines.append(f"Occurrences: {error.occurrence_count}")
        if error.stack_trace:
            lines.append(f"Stack Trace: {error.stack_trace}")
        lines.append("")
    return "\n".join(lines) + "\n" + FIX_INSTRUCTIONS


def summarize_errors(batches: Sequence[ErrorBatch]) -> str:
    """One-line notice shown when a fix cycle starts."""
    if len(batches) == 1:
        error = batches[0]
        count = f" ({error.occurrence_count} times)" if error.occurrence_count > 1 else ""
        return f"Error detected{count}: {error.message} - attempting automatic fix..."
    total = sum(e.occurrence_count for e in batches)
    return (
        f"Multiple errors detected ({len(batches)} unique errors, {total} total occurrences)"
        " - attempting automatic fix..."
    )


def extract_fix_summary(response: str) -> list[str]:
    """Best-effort pick of the lines in which the model describes a fix."""
    found = []
    for line in response.splitlines():
        stripped = line.strip().lstrip("-*• ").strip()
        if not stripped:
            continue
        if (
            stripped.startswith(_SUMMARY_PREFIXES)
            or any(p in stripped for p in _SUMMARY_PHRASES)
            or ("Fixed" in stripped and "error" in stripped)
        ):
            found.append(stripped)
    return found


def success_message(fix_summary: Sequence[str]) -> str:
    if not fix_summary:
        return (
            "✅ Scripts compiled successfully!\n\n"
            "✅ Error fixing completed successfully! All errors have been resolved."
        )
    lines = [
        "✅ Scripts compiled successfully!",
        "",
        "✅ **Error fixing completed successfully!**",
        "",
        "**Summary of fixes applied:**",
    ]
    lines.extend(f"{i}. {item}" for i, item in enumerate(fix_summary, start=1))
    lines.append("")
    lines.append("All errors have been resolved. Your scripts should now compile without issues!")
    return "\n".join(lines)


RETRY_MESSAGE = "❗ Some errors remain, attempting additional fixes..."
NO_COMPILATION_MESSAGE = "❌ Compilation failed. Please check the console for errors."
EMPTY_RESPONSE_MESSAGE = "❌ Error: Claude AI returned empty response"
STOPPED_MESSAGE = "⏹️ Error fixing stopped by user."


def max_attempts_message(attempts: int) -> str:
    return f"⚠️ Error fixing completed after {attempts} attempts. Some errors may still remain."
