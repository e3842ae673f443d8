"""Markdown renderings of a daily reflection for notes apps."""

from unearthed.services.reflection import DailyReflection


def blockquote(text: str) -> str:
    """Quote every line of ``text``, so multi-line highlights stay inside the quote."""
    return "\n".join(f"> {line}" if line else ">" for line in text.splitlines() or [""])


def capacities_markdown(reflection: DailyReflection) -> str:
    """Daily-note block with Capacities object links for the book and author."""
    source, quote = reflection.source, reflection.quote
    text = f"\n---\n## 🔥 Remember This?\n### [[book/{source.title}]]\n"
    if source.author:
        text += f"#### [[person/{source.author}]]\n"
    text += f"\n{blockquote(quote.content)}\n\n**Location:** {quote.location or ''}\n"
    if reflection.note:
        text += f"\n\n**My note:** {reflection.note}\n\n---\n"
    return text


def supernotes_markdown(reflection: DailyReflection) -> str:
    """Plain markdown card body for the Supernotes daily card."""
    source, quote = reflection.source, reflection.quote
    lines = [
        "## 🔥 Remember This?",
        f"**{source.title}**" + (f" by {source.author}" if source.author else ""),
        "",
        blockquote(quote.content),
    ]
    if quote.location:
        lines += ["", f"**Location:** {quote.location}"]
    if reflection.note:
        lines += ["", f"**My note:** {reflection.note}"]
    return "\n".join(lines) + "\n"
