"""Editor tool catalog sent with every request.

Definitions are passed to the API verbatim. The executor on the editor
side owns their behavior; this module only describes them.
"""

from __future__ import annotations

from typing import Any


def _schema(properties: dict[str, dict[str, str]], required: list[str] | None = None) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": required or [],
        "additionalProperties": False,
    }


def _string(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


SCRIPT_TOOLS: list[dict[str, Any]] = [
    {
        "name": "create_script",
        "description": "Create a new C# script in Unity with the specified name and content",
        "input_schema": _schema(
            {
                "script_name": _string("Name of the script file (without .cs extension)"),
                "script_content": _string("Complete C# script content"),
                "folder_path": _string("Folder path relative to Assets (default: Scripts)"),
            },
            ["script_name", "script_content"],
        ),
    },
]

GAMEOBJECT_TOOLS: list[dict[str, Any]] = [
    {
        "name": "create_gameobject",
        "description": (
            "Create a new GameObject in the current scene. Can create empty GameObjects "
            "or primitive shapes like cubes, spheres, etc."
        ),
        "input_schema": _schema(
            {
                "name": _string(
                    "Name of the GameObject (optional, will use primitive type or 'GameObject' as default)"
                ),
                "primitive_type": _string(
                    "Type of primitive to create. Must be one of: Cube, Sphere, Cylinder, Plane, "
                    "Quad, Capsule. If not specified, creates an empty GameObject."
                ),
                "position": _string("Position as 'x,y,z' (default: 0,0,0)"),
            },
        ),
    },
    {
        "name": "add_component",
        "description": "Add a component to a GameObject",
        "input_schema": _schema(
            {
                "gameobject_name": _string("Name of the GameObject to add component to"),
                "component_type": _string("Type of component to add (e.g., Rigidbody, BoxCollider)"),
            },
            ["gameobject_name", "component_type"],
        ),
    },
    {
        "name": "set_transform",
        "description": "Set the position, rotation, or scale of a GameObject",
        "input_schema": _schema(
            {
                "gameobject_name": _string("Name of the GameObject"),
                "position": _string("Position as 'x,y,z'"),
                "rotation": _string("Rotation as 'x,y,z' (euler angles)"),
                "scale": _string("Scale as 'x,y,z'"),
            },
            ["gameobject_name"],
        ),
    },
    {
        "name": "list_gameobjects",
        "description": "List all GameObjects in the current scene",
        "input_schema": _schema({}),
    },
    {
        "name": "delete_gameobject",
        "description": "Delete a GameObject from the scene",
        "input_schema": _schema(
            {"gameobject_name": _string("Name of the GameObject to delete")},
            ["gameobject_name"],
        ),
    },
    {
        "name": "view_gameobject",
        "description": (
            "View detailed information about a GameObject including all its components, "
            "transform properties, and other details"
        ),
        "input_schema": _schema(
            {"gameobject_name": _string("Name of the GameObject to inspect")},
            ["gameobject_name"],
        ),
    },
]

FILE_TOOLS: list[dict[str, Any]] = [
    {
        "name": "search_files",
        "description": (
            "Search for files in the Unity project. Can search by file extension, name pattern, "
            "or recursively explore directories."
        ),
        "input_schema": _schema(
            {
                "search_pattern": _string(
                    "File search pattern (e.g., '*.cs' for C# scripts, '*.prefab' for prefabs, "
                    "or '*' for all files)"
                ),
                "directory": _string(
                    "Directory to search in, relative to Assets folder (default: search entire Assets folder)"
                ),
                "recursive": _string(
                    "Whether to search recursively in subdirectories (true/false, default: true)"
                ),
            },
            ["search_pattern"],
        ),
    },
]

# Anthropic-defined text editor: type + name only, no schema
TEXT_EDITOR_TOOLS: list[dict[str, Any]] = [
    {"type": "text_editor_20250429", "name": "str_replace_based_edit_tool"},
]


def editor_tools() -> list[dict[str, Any]]:
    """The full ordered catalog. Returns a fresh list on each call."""
    return [dict(t) for t in (*SCRIPT_TOOLS, *GAMEOBJECT_TOOLS, *FILE_TOOLS, *TEXT_EDITOR_TOOLS)]
