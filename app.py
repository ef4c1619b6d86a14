# app.py
from flask import (
    Flask, render_template, request, redirect, url_for,
    flash, session, jsonify, abort
)
import logging
import os, secrets
from datetime import datetime
from functools import wraps
from flask_login import (
    LoginManager,
    UserMixin,
    login_user,
    logout_user,
    current_user,
    login_required,
)
from werkzeug.security import generate_password_hash, check_password_hash
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from notifications.channels import SmsGateway, TwilioGateway
from notifications.config import (
    DEFAULT_GATEWAY_API_URL,
    DEFAULT_SEND_TIMEOUT,
    DISPLAY_NAME,
    resolve_base_url,
)
from notifications.models import BuildOutcome, BuildResult, NotificationConfig
from notifications.service import SmsNotifier

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
LOGGER = logging.getLogger("notifier")

app = Flask(__name__)
app.secret_key = os.getenv("SECRET_KEY", "dev-only-key")
app.config.update(
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_SECURE=os.getenv("FLASK_ENV") == "production",
)

login_manager = LoginManager()
login_manager.init_app(app)
login_manager.login_view = "login"
login_manager.login_message = "Please log in first."

DEBUG = os.getenv("FLASK_ENV") != "production"

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.environ.get("DATA_DIR", BASE_DIR)

os.makedirs(DATA_DIR, exist_ok=True)


def data_path(name: str) -> str:
    return os.path.join(DATA_DIR, name)

# ------------------------------- Paths / Config -------------------------------
ADMIN_USERNAME        = os.getenv("ADMIN_USERNAME", "admin").strip().lower()
ADMIN_PASSWORD_HASH   = generate_password_hash(os.getenv("ADMIN_PASSWORD", "admin"))

JENKINS_ROOT_URL      = os.getenv("JENKINS_ROOT_URL")
JENKINS_LOCATION_URL  = os.getenv("JENKINS_LOCATION_URL")
HOOK_TOKEN            = os.getenv("HOOK_TOKEN")

SMS_GATEWAY_API_URL   = os.getenv("SMS_GATEWAY_API_URL", DEFAULT_GATEWAY_API_URL)
SMS_SEND_TIMEOUT      = float(os.getenv("SMS_SEND_TIMEOUT", str(DEFAULT_SEND_TIMEOUT)))

DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("SQLALCHEMY_DATABASE_URI")
DEFAULT_SQLITE_URL = f"sqlite:///{data_path('notifier.db')}"

if not DATABASE_URL:
    DATABASE_URL = DEFAULT_SQLITE_URL

engine_kwargs: dict[str, Any] = {"future": True}
if str(DATABASE_URL).startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}
    pool_pre_ping = False
else:
    pool_pre_ping = True
engine = create_engine(DATABASE_URL, pool_pre_ping=pool_pre_ping, **engine_kwargs)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
Base = declarative_base()

SETTINGS_ROW_ID = 1


class SettingsModel(Base):
    __tablename__ = "notifier_settings"
    id = Column(Integer, primary_key=True)
    twilio_account_sid = Column(String(64), default="", nullable=False)
    twilio_auth_token = Column(String(128), default="", nullable=False)
    twilio_number = Column(String(32), default="", nullable=False)
    jenkins_url = Column(String(255), default="", nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class JobNotifierModel(Base):
    __tablename__ = "job_notifiers"
    job_name = Column(String(255), primary_key=True)
    numbers_to_notify = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


Base.metadata.create_all(bind=engine)


# ------------------------------- Auth model -------------------------------
class AppUser(UserMixin):
    def __init__(self, username: str):
        self.id = username
        self.username = username
        self.display_name = username.title()


@login_manager.user_loader
def load_logged_in_user(user_id: str):
    if user_id and user_id == ADMIN_USERNAME:
        return AppUser(user_id)
    return None


def check_admin_credentials(username: str, password: str) -> bool:
    return username == ADMIN_USERNAME and check_password_hash(ADMIN_PASSWORD_HASH, password)


# ------------------------------- Storage -------------------------------
def _settings_to_config(model: Optional[SettingsModel]) -> NotificationConfig:
    if model is None:
        return NotificationConfig()
    return NotificationConfig(
        account_sid=model.twilio_account_sid or "",
        auth_token=model.twilio_auth_token or "",
        sender_number=model.twilio_number or "",
        base_url=model.jenkins_url or "",
    )


def load_settings() -> NotificationConfig:
    with SessionLocal() as db:
        return _settings_to_config(db.get(SettingsModel, SETTINGS_ROW_ID))


def save_settings(account_sid: str, auth_token: str, number: str, jenkins_url: str) -> NotificationConfig:
    with SessionLocal.begin() as db:
        record = db.get(SettingsModel, SETTINGS_ROW_ID)
        if record is None:
            record = SettingsModel(id=SETTINGS_ROW_ID)
            db.add(record)
        record.twilio_account_sid = account_sid
        record.twilio_auth_token = auth_token
        record.twilio_number = number
        record.jenkins_url = jenkins_url
        return _settings_to_config(record)


def load_job_notifiers() -> Dict[str, str]:
    with SessionLocal() as db:
        rows = db.query(JobNotifierModel).order_by(JobNotifierModel.job_name).all()
        return {row.job_name: row.numbers_to_notify for row in rows}


def load_job_notifier(job_name: str) -> Optional[SmsNotifier]:
    with SessionLocal() as db:
        record = db.get(JobNotifierModel, job_name)
        if record is None:
            return None
        return SmsNotifier(record.numbers_to_notify)


def save_job_notifier(job_name: str, numbers_to_notify: str) -> None:
    with SessionLocal.begin() as db:
        record = db.get(JobNotifierModel, job_name)
        if record is None:
            db.add(JobNotifierModel(job_name=job_name, numbers_to_notify=numbers_to_notify))
        else:
            record.numbers_to_notify = numbers_to_notify


def delete_job_notifier(job_name: str) -> bool:
    with SessionLocal.begin() as db:
        record = db.get(JobNotifierModel, job_name)
        if record is None:
            return False
        db.delete(record)
        return True


class StoredConfigProvider:
    """Snapshot of the persisted gateway settings, read once per instance."""

    def __init__(self):
        self._config: Optional[NotificationConfig] = None

    def current(self) -> NotificationConfig:
        if self._config is None:
            self._config = load_settings()
        return self._config


def get_sms_gateway(config: NotificationConfig) -> SmsGateway:
    """Build a gateway for a single hook call; nothing but the config is shared between builds."""
    return TwilioGateway(config.account_sid, config.auth_token, api_url=SMS_GATEWAY_API_URL, timeout=SMS_SEND_TIMEOUT)


# ------------------------------- Utilities -------------------------------
def admin_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return login_manager.unauthorized()
        return f(*args, **kwargs)
    return wrapper


@app.context_processor
def inject_flags():
    return {"DISPLAY_NAME": DISPLAY_NAME}


def csrf_token():
    return session.get("_csrf", "")


app.jinja_env.globals["csrf_token"] = csrf_token

CSRF_EXEMPT_ENDPOINTS = {"build_complete"}


@app.before_request
def ensure_csrf_token():
    session["_csrf"] = session.get("_csrf") or secrets.token_urlsafe(32)
    if request.method == "POST" and request.endpoint not in CSRF_EXEMPT_ENDPOINTS:
        token = session.get("_csrf")
        submitted = request.form.get("csrf_token")
        if not token or not submitted or not secrets.compare_digest(submitted.encode(), token.encode()):
            abort(400)


@app.get("/healthz")
def healthz():
    return {"ok": True}, 200

# ------------------------------- Auth -------------------------------
@app.route("/login", methods=["GET","POST"])
def login():
    if request.method == "POST":
        uname = request.form.get("username", "").strip().lower()
        pwd = request.form.get("password", "")
        if check_admin_credentials(uname, pwd):
            login_user(AppUser(uname))
            flash("Logged in.")
            return redirect(url_for("configure"))
        flash("Invalid credentials.")
    return render_template("login.html")

@app.route("/logout")
@login_required
def logout():
    logout_user()
    session.clear()
    flash("You have been logged out.")
    return redirect(url_for("login"))

# ------------------------------- Gateway settings -------------------------------
@app.route("/", methods=["GET","POST"], endpoint="configure")
@admin_required
def configure():
    if request.method == "POST":
        account_sid = request.form.get("twilioAccountSid", "").strip()
        auth_token = request.form.get("twilioAuthToken", "").strip()
        number = request.form.get("twilioNumber", "").strip()
        if not auth_token:
            # blank token field keeps the stored secret
            auth_token = load_settings().auth_token
        jenkins_url = resolve_base_url(JENKINS_ROOT_URL, JENKINS_LOCATION_URL)
        config = save_settings(account_sid, auth_token, number, jenkins_url)
        LOGGER.info("Saved %s settings (base URL %s)", DISPLAY_NAME, config.base_url)
        if not config.is_complete:
            flash("Settings saved, but SMS sending stays disabled until every field is filled in.")
        else:
            flash("Settings saved.")
        return redirect(url_for("configure"))

    config = load_settings()
    return render_template("configure.html", config=config)

# ------------------------------- Job notifiers -------------------------------
@app.route("/jobs", methods=["GET","POST"], endpoint="jobs")
@admin_required
def jobs_page():
    if request.method == "POST":
        job_name = request.form.get("jobName", "").strip()
        numbers = request.form.get("numbersToNotify", "")
        if not job_name:
            flash("Job name required.")
            return redirect(url_for("jobs"))
        check = SmsNotifier.check_numbers_to_notify(numbers)
        if not check.is_ok:
            flash(check.message)
            return render_template("jobs.html", notifiers=load_job_notifiers(), job_name=job_name, numbers=numbers), 400
        save_job_notifier(job_name, numbers)
        LOGGER.info("Saved SMS recipients for job %s", job_name)
        flash("Job notifier saved.")
        return redirect(url_for("jobs"))
    return render_template("jobs.html", notifiers=load_job_notifiers(), job_name="", numbers="")


@app.route("/jobs/<path:job_name>/delete", methods=["POST"], endpoint="delete_job")
@admin_required
def delete_job(job_name):
    if delete_job_notifier(job_name):
        flash("Job notifier removed.")
    else:
        flash("No notifier configured for that job.")
    return redirect(url_for("jobs"))


@app.get("/jobs/check-numbers")
def check_numbers():
    result = SmsNotifier.check_numbers_to_notify(request.args.get("value"))
    return jsonify(result.to_dict())

# ------------------------------- Build hook -------------------------------
@app.post("/hooks/build-complete", endpoint="build_complete")
def build_complete():
    if HOOK_TOKEN:
        submitted = request.headers.get("X-Hook-Token", "")
        if not secrets.compare_digest(submitted.encode(), HOOK_TOKEN.encode()):
            abort(403)

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        abort(400)
    job_name = str(payload.get("job") or "").strip()
    if not job_name:
        abort(400)
    try:
        result = BuildResult.parse(str(payload.get("result") or ""))
    except ValueError:
        abort(400)

    notifier = load_job_notifier(job_name)
    if notifier is None:
        return jsonify({"success": True, "notified": 0, "failed": 0})

    outcome = BuildOutcome(
        project_name=str(payload.get("display_name") or job_name),
        result=result,
        url=str(payload.get("url") or ""),
    )
    provider = StoredConfigProvider()
    config = provider.current()
    listener = logging.getLogger(f"notifications.build.{job_name}")
    success = notifier.perform(outcome, provider, get_sms_gateway(config), listener)
    failed = sum(1 for item in notifier.last_results if not item.sent)
    return jsonify({"success": success, "notified": len(notifier.last_results), "failed": failed})


# ------------- Run -------------
if __name__ == "__main__":
    app.run(debug=DEBUG)
