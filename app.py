# app.py
import io
import logging
import os
from pathlib import Path

from flask import Flask, request, send_file, abort, jsonify

from config import Config
from documents import OrderNotFoundError, load_order_document
from models import Base, make_engine, make_session_factory, WorkOrder
from pdf_service import Profile, render_order_pdf, generate_and_store_pdf
from settings import clear_settings_cache

logger = logging.getLogger(__name__)


# -----------------------------
# Helpers
# -----------------------------
def _ensure_dirs():
    if Config.SQLALCHEMY_DATABASE_URI.startswith("sqlite:///"):
        Path(Config.SQLALCHEMY_DATABASE_URI[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
    Path(Config.EXPORTS_DIR).mkdir(parents=True, exist_ok=True)


def _profile_or_400(raw) -> Profile:
    try:
        return Profile.parse(raw)
    except ValueError as e:
        abort(400, description=str(e))


def _truthy(raw) -> bool:
    return (raw or "").strip().lower() in ("1", "true", "yes", "on")


# -----------------------------
# App factory
# -----------------------------
def create_app(db_url: str | None = None):
    logging.basicConfig(level=Config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    _ensure_dirs()

    app = Flask(__name__)
    app.config.from_object(Config)

    engine = make_engine(db_url or Config.SQLALCHEMY_DATABASE_URI, echo=Config.SQLALCHEMY_ECHO)
    Base.metadata.create_all(engine)

    SessionLocal = make_session_factory(engine)
    app.extensions["session_factory"] = SessionLocal

    def db_session():
        return SessionLocal()

    @app.route("/health")
    def health():
        return jsonify(ok=True)

    # -----------------------------
    # PDF routes
    # -----------------------------
    @app.route("/orders/<int:order_id>/pdf")
    def order_pdf(order_id):
        profile = _profile_or_400(request.args.get("profile"))
        download = _truthy(request.args.get("download"))

        with db_session() as s:
            try:
                order_doc, render_cfg = load_order_document(s, order_id)
            except OrderNotFoundError:
                abort(404)

        rendered = render_order_pdf(order_doc, render_cfg, profile)
        return send_file(
            io.BytesIO(rendered.content),
            mimetype="application/pdf",
            as_attachment=download,
            download_name=f"orden_{order_doc.order_number}_{profile.value}.pdf",
        )

    @app.route("/orders/<int:order_id>/pdf/generate", methods=["POST"])
    def order_pdf_generate(order_id):
        profile = _profile_or_400(request.args.get("profile"))
        with db_session() as s:
            try:
                path = generate_and_store_pdf(s, order_id, profile)
            except OrderNotFoundError:
                abort(404)
        return jsonify(order_id=order_id, profile=profile.value, path=path), 201

    @app.route("/orders/<int:order_id>/pdf/download")
    def order_pdf_download(order_id):
        with db_session() as s:
            order = s.get(WorkOrder, order_id)
            if not order:
                abort(404)
            if not order.pdf_path or not os.path.exists(order.pdf_path):
                abort(404, description="PDF not found. Generate it first.")

            return send_file(
                order.pdf_path,
                as_attachment=True,
                download_name=os.path.basename(order.pdf_path),
                mimetype="application/pdf"
            )

    @app.route("/settings/cache/clear", methods=["POST"])
    def settings_cache_clear():
        clear_settings_cache()
        logger.info("System settings cache cleared")
        return jsonify(status="cleared")

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(debug=True)
