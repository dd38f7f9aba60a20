from typing import Any, Dict, Mapping, Tuple

# Placeholder token -> variable name, applied in this order.
PLACEHOLDERS: Tuple[Tuple[str, str], ...] = (
    ("{{user}}", "user"),
    ("{{user.tag}}", "user.tag"),
    ("{{user.id}}", "user.id"),
    ("{{guild}}", "guild"),
    ("{{guild.id}}", "guild.id"),
)


def render_template(template: str, variables: Mapping[str, Any]) -> str:
    """
    Replace every known placeholder token with its variable. Tokens without a
    variable, and unknown tokens such as ``{{foo}}``, are left as written.
    """
    text = template or ""
    for token, key in PLACEHOLDERS:
        if key in variables:
            text = text.replace(token, str(variables[key]))
    return text


def welcome_variables(member: Any, guild: Any) -> Dict[str, str]:
    return {
        "user": f"<@{member.id}>",
        "user.tag": str(member.display_name),
        "user.id": str(member.id),
        "guild": str(guild.name),
        "guild.id": str(guild.id),
    }
