import logging
from flask import Flask
from flask_cors import CORS
from dotenv import load_dotenv

from .cli import register_commands
from .services.archive import create_story_archive
from .services.generator import StoryGenerator
from .services.knowledge_base import KnowledgeBaseProvider
from .routes import bp as api_bp


def create_app() -> Flask:
    """Application factory that wires up services, blueprints, and config."""
    load_dotenv()

    logging.basicConfig(level=logging.INFO)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    app = Flask(__name__)
    CORS(app)

    # The knowledge base is built lazily, once, on first use
    knowledge = KnowledgeBaseProvider()
    story_archive = create_story_archive()
    story_generator = StoryGenerator(knowledge)

    # Expose services via app config so routes can access them
    app.config["KNOWLEDGE_BASE"] = knowledge
    app.config["STORY_ARCHIVE"] = story_archive
    app.config["STORY_GENERATOR"] = story_generator

    app.register_blueprint(api_bp)
    register_commands(app)

    return app
