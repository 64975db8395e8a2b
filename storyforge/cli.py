import click
from flask import Flask, current_app

from .services.knowledge_base import KnowledgeBase, KnowledgeBaseError

SAMPLE_QUERIES = (
    "revenge wedding sister",
    "identity theft credit cards",
    "betrayal family drama",
    "planning revenge scheme",
)


def register_commands(app: Flask) -> None:
    @app.cli.command("kb-stats")
    @click.option("--corpus", default=None, help="Corpus file, defaults to KNOWLEDGE_BASE_PATH.")
    def kb_stats(corpus):
        """Build the knowledge base and report what it contains."""
        try:
            knowledge_base = KnowledgeBase(corpus)
            knowledge_base.initialize()
        except KnowledgeBaseError as exc:
            raise click.ClickException(str(exc))

        stats = knowledge_base.get_stats()
        click.echo("Knowledge Base Statistics:")
        click.echo(f"  Total Stories: {stats['total_stories']}")
        click.echo(f"  Total Chunks: {stats['total_chunks']}")
        click.echo(f"  Total Words: {stats['total_words']:,}")
        click.echo(f"  Average Chunk Size: {stats['average_chunk_size']} words")
        click.echo(f"  Available Themes: {', '.join(stats['available_themes'])}")

        for query in SAMPLE_QUERIES:
            results = knowledge_base.search_relevant_chunks(query, 2)
            click.echo(f"\nQuery: {query!r} -> {len(results)} relevant chunks")
            if results:
                click.echo(f"  Preview: {results[0].content[:100]}...")
                click.echo(f"  Themes: {', '.join(results[0].themes)}")

    @app.cli.command("kb-context")
    @click.argument("prompt")
    def kb_context(prompt):
        """Print the RAG context generated for PROMPT."""
        click.echo(current_app.config["KNOWLEDGE_BASE"].context_for(prompt))
