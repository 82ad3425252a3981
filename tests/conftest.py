"""Shared pytest fixtures for the order PDF tests."""

from datetime import date, datetime

import pytest

from config import Config
from documents import (
    BranchInfo,
    ChecklistEntry,
    ChecklistStatus,
    CustomerInfo,
    DeviceInfo,
    LineItem,
    OrderDocument,
    RenderConfig,
)
from models import (
    Base,
    Branch,
    Customer,
    DeviceChecklistItem,
    OrderNote,
    OrderService,
    SystemSetting,
    WorkOrder,
    make_engine,
    make_session_factory,
)
from pdf_service import RenderResources
from pdf_surface import DEFAULT_LINE_HEIGHT_FACTOR, PdfSurface
from settings import DEFAULT_SETTINGS, clear_settings_cache


class RecordingSurface(PdfSurface):
    """Real reportlab surface that also remembers what was drawn."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.texts = []
        self.rects = []
        self.images = []
        self.baselines = []
        self.line_widths = []

    def text(self, text, x, y, line_height=None):
        lines = text if isinstance(text, (list, tuple)) else [text]
        step = line_height if line_height is not None else self._font_size * DEFAULT_LINE_HEIGHT_FACTOR / self.k
        self.texts.extend(str(line) for line in lines)
        self.baselines.extend(y + i * step for i in range(len(lines)))
        super().text(text, x, y, line_height=line_height)

    def rect(self, x, y, w, h, style="S"):
        self.rects.append((x, y, w, h, style))
        super().rect(x, y, w, h, style)

    def set_line_width(self, width):
        self.line_widths.append(width)
        super().set_line_width(width)

    def image(self, data, x, y, w, h):
        self.images.append((x, y, w, h))
        return super().image(data, x, y, w, h)

    def all_text(self) -> str:
        return "\n".join(self.texts)


@pytest.fixture(autouse=True)
def _fresh_settings_cache():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def surface():
    return RecordingSurface(210, 297, unit="mm")


@pytest.fixture
def recorder():
    """Surface factory that keeps every surface it builds."""
    surfaces = []

    def factory(*args, **kwargs):
        s = RecordingSurface(*args, **kwargs)
        surfaces.append(s)
        return s

    factory.surfaces = surfaces
    return factory


@pytest.fixture
def no_resources():
    return RenderResources()


@pytest.fixture
def render_config():
    return RenderConfig.from_settings(DEFAULT_SETTINGS)


@pytest.fixture
def sample_order():
    return OrderDocument(
        order_number="2025-000123",
        created_at=datetime(2025, 3, 14, 10, 30),
        device=DeviceInfo(model="iPhone 13 Pro", serial_number="356789104512345", unlock_code="1234"),
        problem_description="Pantalla quebrada, no enciende la cámara trasera.",
        warranty_days=90,
        replacement_cost=15000,
        line_items=(
            LineItem(name="Cambio de pantalla", quantity=1, unit_price=89990, total=89990),
            LineItem(name="Limpieza interna", quantity=2, unit_price=5000, total=10000, description="Limpieza de conectores"),
        ),
        notes=("Cliente indica que el equipo se mojó.",),
        checklist=(
            ChecklistEntry("Screen", ChecklistStatus.OK),
            ChecklistEntry("Battery", None),
            ChecklistEntry("Camera", ChecklistStatus.DAMAGED),
        ),
        branch=BranchInfo(
            name="Providencia",
            legal_name="iDoc Store SpA",
            address="Av. Providencia 1234, local 5, Santiago",
            phone="+56 2 2345 6789",
            email="providencia@idocstore.cl",
        ),
        customer=CustomerInfo(name="María González", phone="912345678", phone_country_code="+56", email="maria@example.com"),
        commitment_date=date(2025, 3, 20),
    )


# -----------------------------
# Database
# -----------------------------
def seed_database(session) -> int:
    """Inserts one fully populated order and returns its id."""
    branch = Branch(
        name="Providencia",
        razon_social="iDoc Store SpA",
        address="Av. Providencia 1234, Santiago",
        phone="+56 2 2345 6789",
        email="providencia@idocstore.cl",
    )
    customer = Customer(name="María González", phone="912345678", phone_country_code="+56", email="maria@example.com")
    session.add_all([branch, customer])
    session.add_all([
        DeviceChecklistItem(device_type="smartphone", item_name="Battery", item_order=2),
        DeviceChecklistItem(device_type="smartphone", item_name="Screen", item_order=1),
        DeviceChecklistItem(device_type="smartphone", item_name="Camera", item_order=3),
        DeviceChecklistItem(device_type="tablet", item_name="Stylus", item_order=1),
    ])
    order = WorkOrder(
        order_number="2025-000123",
        branch=branch,
        customer=customer,
        device_type="smartphone",
        device_model="iPhone 13 Pro",
        device_serial_number="356789104512345",
        device_unlock_pattern=[1, 5, 9, 6],
        problem_description="Pantalla quebrada",
        checklist_data={"Screen": "ok", "Camera": "damaged", "Battery": ""},
        warranty_days=90,
        replacement_cost=15000,
        commitment_date=date(2025, 3, 20),
        created_at=datetime(2025, 3, 14, 10, 30),
    )
    order.services = [
        OrderService(service_name="Cambio de pantalla", quantity=1, unit_price=89990, total_price=89990),
        OrderService(service_name="Limpieza", quantity=2, unit_price=5000, total_price=None),
    ]
    order.notes = [
        OrderNote(note="Equipo mojado", created_at=datetime(2025, 3, 14, 11, 0)),
        OrderNote(note="  ", created_at=datetime(2025, 3, 14, 12, 0)),
    ]
    session.add(order)
    session.add(SystemSetting(
        setting_key="warranty_policies",
        setting_value={"policies": ["Garantía {warrantyDays} días.", "Sin garantía por líquidos."]},
    ))
    session.commit()
    return order.id


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def session(session_factory):
    with session_factory() as s:
        yield s


@pytest.fixture
def order_id(session):
    return seed_database(session)


@pytest.fixture
def exports_dir(tmp_path, monkeypatch):
    path = tmp_path / "exports"
    monkeypatch.setattr(Config, "EXPORTS_DIR", str(path))
    return path
