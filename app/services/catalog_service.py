"""
Catálogos de colaboradores externos: tarifario, BOM de insumos por
procedimiento y kardex de stock en memoria.

El núcleo clínico solo lee estos catálogos. El kardex aplica las
deducciones cuando recibe StockDeductionRequested desde el bus.
"""

import logging
import threading
from decimal import Decimal

from app.models.catalog import BomLine, StockItem, TariffItem
from app.models.treatment_record import TreatmentCategory
from app.schemas.events import StockDeductionRequested

logger = logging.getLogger(__name__)


class CatalogService:
    def __init__(self) -> None:
        self._tariffs: dict[str, TariffItem] = {}
        self._bom: dict[str, list[BomLine]] = {}
        self._stock: dict[str, StockItem] = {}
        # Reentrante: la deducción se aplica dentro del pase de automatización
        self.stock_lock = threading.RLock()

    # ── Tarifario ────────────────────────────────────

    def register_tariff(self, item: TariffItem) -> None:
        self._tariffs[item.code] = item

    def get_tariff(self, code: str) -> TariffItem | None:
        return self._tariffs.get(code)

    def list_tariffs(self) -> list[TariffItem]:
        return [self._tariffs[c] for c in sorted(self._tariffs)]

    # ── BOM ──────────────────────────────────────────

    def set_bom(self, procedure_code: str, lines: list[BomLine]) -> None:
        self._bom[procedure_code] = list(lines)

    def bom_for(self, procedure_code: str) -> list[BomLine]:
        """Insumos por procedimiento, en orden de registro. Vacío si no hay BOM."""
        return list(self._bom.get(procedure_code, []))

    # ── Kardex ───────────────────────────────────────

    def upsert_stock(self, item: StockItem) -> None:
        with self.stock_lock:
            self._stock[item.code] = item

    def get_stock(self, code: str) -> StockItem | None:
        return self._stock.get(code)

    def list_stock(self, low_stock_only: bool = False) -> list[StockItem]:
        with self.stock_lock:
            items = [self._stock[c] for c in sorted(self._stock)]
        if low_stock_only:
            items = [i for i in items if i.current_stock <= i.min_stock]
        return items

    def apply_deduction(self, event: StockDeductionRequested) -> None:
        """Suscriptor del bus: descuenta stock para una deducción aprobada."""
        with self.stock_lock:
            item = self._stock.get(event.consumable_code)
            if item is None:
                logger.warning(f"Insumo {event.consumable_code} no encontrado, skip")
                return
            stock_before = item.current_stock
            if stock_before < event.quantity:
                logger.warning(
                    f"Stock insuficiente para {item.code}: "
                    f"disponible {stock_before}, solicitado {event.quantity}"
                )
                return
            item.current_stock = stock_before - event.quantity
            logger.info(
                f"Stock {item.code}: {stock_before} → {item.current_stock} "
                f"(tratamiento {event.treatment_record_id})"
            )

    def load_defaults(self) -> None:
        for tariff in DEFAULT_TARIFFS:
            self.register_tariff(tariff)
        for code, lines in DEFAULT_BOM.items():
            self.set_bom(code, lines)
        for code, name, current, minimum, unit in DEFAULT_STOCK:
            self.upsert_stock(StockItem(
                code=code,
                name=name,
                current_stock=Decimal(current),
                min_stock=Decimal(minimum),
                unit=unit,
            ))
        logger.info(
            f"Catálogo por defecto cargado: {len(self._tariffs)} tarifas, "
            f"{len(self._bom)} BOM, {len(self._stock)} insumos"
        )


# ── Catálogo por defecto ─────────────────────────────

def _tariff(code: str, name: str, category: TreatmentCategory, price: str) -> TariffItem:
    return TariffItem(code=code, name=name, category=category, base_price=Decimal(price))


DEFAULT_TARIFFS: tuple[TariffItem, ...] = (
    _tariff("SIMPLE_EXTRACTION", "Exodoncia simple", TreatmentCategory.SURGICAL, "1500"),
    _tariff("SURGICAL_EXTRACTION", "Exodoncia quirúrgica (impactado)", TreatmentCategory.SURGICAL, "4500"),
    _tariff("RCT", "Tratamiento de conductos", TreatmentCategory.ENDODONTIC, "3500"),
    _tariff("SCALING", "Destartraje y pulido", TreatmentCategory.PERIODONTIC, "1200"),
    _tariff("SCALING_ROOT_PLANING", "Raspado y alisado radicular", TreatmentCategory.PERIODONTIC, "2500"),
    _tariff("PERIODONTAL_SURGERY", "Cirugía periodontal", TreatmentCategory.PERIODONTIC, "8000"),
    _tariff("IMPLANT_PLACEMENT", "Implante dental", TreatmentCategory.SURGICAL, "25000"),
    _tariff("JAW_SURGERY", "Cirugía ortognática", TreatmentCategory.SURGICAL, "45000"),
    _tariff("COMPOSITE_RESTORATION", "Restauración con resina", TreatmentCategory.RESTORATIVE, "1500"),
    _tariff("AMALGAM_RESTORATION", "Restauración con amalgama", TreatmentCategory.RESTORATIVE, "1000"),
    _tariff("GIC_RESTORATION", "Restauración con ionómero de vidrio", TreatmentCategory.RESTORATIVE, "800"),
    _tariff("DEEP_CARIES_MANAGEMENT", "Manejo de caries profunda", TreatmentCategory.RESTORATIVE, "1200"),
    _tariff("CROWN_PREPARATION", "Preparación para corona", TreatmentCategory.PROSTHODONTIC, "3500"),
    _tariff("ORTHODONTIC_BONDING", "Cementado de brackets", TreatmentCategory.ORTHODONTIC, "15000"),
)


def _bom(*lines: tuple[str, str]) -> list[BomLine]:
    return [BomLine(consumable_code=c, quantity=Decimal(q)) for c, q in lines]


DEFAULT_BOM: dict[str, list[BomLine]] = {
    "SIMPLE_EXTRACTION": _bom(("GLOVES", "2"), ("ANESTHETIC_CARTRIDGE", "1"), ("GAUZE", "4")),
    "SURGICAL_EXTRACTION": _bom(
        ("GLOVES", "2"), ("ANESTHETIC_CARTRIDGE", "2"), ("GAUZE", "6"), ("SUTURE", "1"),
    ),
    "RCT": _bom(
        ("GLOVES", "2"), ("ANESTHETIC_CARTRIDGE", "1"), ("ENDO_FILES", "1"), ("GUTTA_PERCHA", "1"),
    ),
    "SCALING": _bom(("GLOVES", "2"), ("PROPHY_PASTE", "1")),
    "COMPOSITE_RESTORATION": _bom(
        ("GLOVES", "2"), ("COMPOSITE_SYRINGE", "1"), ("BONDING_AGENT", "1"), ("ETCHANT", "1"),
    ),
    "IMPLANT_PLACEMENT": _bom(
        ("GLOVES", "4"), ("ANESTHETIC_CARTRIDGE", "2"), ("IMPLANT_FIXTURE", "1"), ("SUTURE", "1"),
    ),
}

# (código, nombre, stock actual, stock mínimo, unidad)
DEFAULT_STOCK: tuple[tuple[str, str, str, str, str], ...] = (
    ("GLOVES", "Guantes de nitrilo (par)", "200", "40", "pair"),
    ("ANESTHETIC_CARTRIDGE", "Cartucho de lidocaína 2%", "100", "20", "unit"),
    ("GAUZE", "Gasa estéril", "500", "100", "unit"),
    ("SUTURE", "Sutura reabsorbible 4-0", "30", "5", "unit"),
    ("ENDO_FILES", "Set de limas endodónticas", "20", "4", "set"),
    ("GUTTA_PERCHA", "Conos de gutapercha", "50", "10", "box"),
    ("PROPHY_PASTE", "Pasta profiláctica", "40", "8", "unit"),
    ("COMPOSITE_SYRINGE", "Jeringa de resina compuesta", "25", "5", "unit"),
    ("BONDING_AGENT", "Adhesivo dental", "15", "3", "unit"),
    ("ETCHANT", "Ácido grabador 37%", "15", "3", "unit"),
    ("IMPLANT_FIXTURE", "Implante de titanio", "6", "2", "unit"),
)
