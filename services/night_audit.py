"""
Orquestador de la auditoría nocturna.

Fases: idle -> reviewing -> confirming -> posting -> settling -> completing -> complete

- La fase vive en la fila NightAudit; cada cambio es un UPDATE condicional
  sobre (fase, versión), así que un reintento o un segundo disparo concurrente
  no puede duplicar el avance.
- El posteo de noches hace commit por habitación: una falla deja la auditoría
  en 'posting' con su token y el reintento continúa donde quedó.
- Cada cargo de noche lleva una clave natural única (hotel, fecha, habitación)
  y además es único por (segmento, fecha), aunque el huésped cambie de habitación;
  un duplicado se absorbe como éxito.
- El cierre (estadísticas, historial y avance de la fecha operativa) es una
  única transacción.
"""

import uuid
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.core import (
    PosOrder, PosOrderStatus, Reservation, ReservationRoom, ReservationStatus, Room, RoomStatus,
)
from models.folio import Folio, FolioLineItem, FolioPayment, FolioStatus, LineItemCategory
from models.night_audit import AuditPhase, AuditStatus, NightAudit
from services.audit_history import AuditHistoryService
from services.audit_trail import record_action
from services.business_date import BusinessDateService
from services.errors import (
    AuditAlreadyRunning, ConcurrentModification, DuplicatePosting, HotelError,
    InvalidTransition, OutstandingBalance, PersistenceFailure, ValidationFailed,
)
from services.folio_ledger import FolioService, quantize
from services.hotels import HotelService
from services.housekeeping import HousekeepingService
from services.rates import RateResolver
from services.reservations import ReservationService
from utils.events import AuditPhaseChanged, BusinessDateAdvanced, FolioUpdated, event_bus
from utils.logging_utils import log_event, log_warning
from utils.timezone import utc_now
from utils.transactions import run_in_transaction


PHASE_ORDER = [
    AuditPhase.IDLE,
    AuditPhase.REVIEWING,
    AuditPhase.CONFIRMING,
    AuditPhase.POSTING,
    AuditPhase.SETTLING,
    AuditPhase.COMPLETING,
    AuditPhase.COMPLETE,
]

ZERO = Decimal("0.00")


def room_posting_key(hotel_id: int, business_date: date, room_id: int) -> str:
    return f"room:{hotel_id}:{business_date.isoformat()}:{room_id}"


def _jsonable(value):
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


@dataclass
class AuditStatistics:
    business_date: date
    total_rooms: int = 0
    occupied_rooms: int = 0
    vacant_rooms: int = 0
    occupancy_rate: Decimal = ZERO
    room_revenue: Decimal = ZERO
    fb_revenue: Decimal = ZERO
    other_revenue: Decimal = ZERO
    total_revenue: Decimal = ZERO
    total_tax: Decimal = ZERO
    total_service_charge: Decimal = ZERO
    total_payments: Decimal = ZERO
    adr: Decimal = ZERO
    revpar: Decimal = ZERO
    arrivals: int = 0
    departures: int = 0
    stayovers: int = 0
    no_shows: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PostingResult:
    audit_id: int
    business_date: date
    phase: str
    posted: int = 0
    already_posted: int = 0
    total: int = 0
    exceptions: List[dict] = field(default_factory=list)
    posting_token: Optional[str] = None


class NightAuditService:

    # ========================================================================
    # CONSULTAS
    # ========================================================================

    @staticmethod
    def get_current(db: Session, hotel_id: int) -> Optional[NightAudit]:
        """Auditoría de la fecha operativa vigente (None si todavía no se inició)"""
        business_date = BusinessDateService.current(db, hotel_id)
        return db.query(NightAudit).filter(
            NightAudit.hotel_id == hotel_id, NightAudit.business_date == business_date
        ).first()

    @staticmethod
    def _require_in_progress(db: Session, hotel_id: int) -> NightAudit:
        audit = NightAuditService.get_current(db, hotel_id)
        if not audit or audit.status == AuditStatus.PENDING.value:
            raise InvalidTransition("No hay auditoría nocturna en curso", current=AuditPhase.IDLE.value)
        if audit.status == AuditStatus.COMPLETED.value:
            raise InvalidTransition(
                f"La auditoría del {audit.business_date.isoformat()} ya está completada",
                current=audit.phase,
            )
        return audit

    @staticmethod
    def _advance_phase(
        db: Session,
        hotel_id: int,
        audit_id: int,
        from_phase: AuditPhase,
        to_phase: AuditPhase,
        usuario: str,
        **extra,
    ) -> NightAudit:
        """Cambio de fase con compare-and-swap. Si ya se avanzó, no hace nada."""
        def work():
            audit = db.query(NightAudit).filter(NightAudit.id == audit_id).first()
            if PHASE_ORDER.index(AuditPhase(audit.phase)) >= PHASE_ORDER.index(to_phase):
                return audit, False
            if audit.phase != from_phase.value:
                raise InvalidTransition(
                    f"Auditoría en fase {audit.phase}: se esperaba {from_phase.value}",
                    current=audit.phase, target=to_phase.value,
                )
            values = {"phase": to_phase.value, "version": NightAudit.version + 1, "updated_at": utc_now()}
            values.update(extra)
            rows = (
                db.query(NightAudit)
                .filter(
                    NightAudit.id == audit_id,
                    NightAudit.phase == from_phase.value,
                    NightAudit.version == audit.version,
                )
                .update(values, synchronize_session=False)
            )
            if rows == 0:
                raise ConcurrentModification("La auditoría fue modificada por otra operación", audit_id=audit_id)
            record_action(db, hotel_id, "night_audit", audit_id, "AUDIT_PHASE", usuario,
                          f"{from_phase.value} -> {to_phase.value}")
            return audit, True

        audit, advanced = run_in_transaction(db, work, area="auditoria")
        if advanced:
            event_bus.publish(AuditPhaseChanged(
                hotel_id=hotel_id, audit_id=audit.id, business_date=audit.business_date,
                old_phase=from_phase.value, new_phase=to_phase.value,
            ))
            log_event("auditoria", usuario, "Cambio de fase", f"audit={audit_id} {from_phase.value} -> {to_phase.value}")
        return audit

    # ========================================================================
    # INICIO / CHECKLIST / CANCELACIÓN
    # ========================================================================

    @staticmethod
    def start_audit(db: Session, hotel_id: int, usuario: str = "sistema") -> NightAudit:
        """
        Raises:
            AuditAlreadyRunning: ya existe una auditoría en curso o completada para la fecha
        """
        business_date = BusinessDateService.current(db, hotel_id)

        def work():
            audit = db.query(NightAudit).filter(
                NightAudit.hotel_id == hotel_id, NightAudit.business_date == business_date
            ).first()
            now = utc_now()
            if audit:
                if audit.status != AuditStatus.PENDING.value:
                    raise AuditAlreadyRunning(
                        f"Ya existe una auditoría {audit.status} para {business_date.isoformat()}",
                        audit_id=audit.id, status=audit.status,
                    )
                rows = (
                    db.query(NightAudit)
                    .filter(
                        NightAudit.id == audit.id,
                        NightAudit.status == AuditStatus.PENDING.value,
                        NightAudit.version == audit.version,
                    )
                    .update(
                        {
                            "status": AuditStatus.IN_PROGRESS.value,
                            "phase": AuditPhase.REVIEWING.value,
                            "version": NightAudit.version + 1,
                            "started_at": now,
                            "run_by": usuario,
                            "updated_at": now,
                        },
                        synchronize_session=False,
                    )
                )
                if rows == 0:
                    raise AuditAlreadyRunning(
                        f"Otra operación inició la auditoría de {business_date.isoformat()}", audit_id=audit.id,
                    )
            else:
                audit = NightAudit(
                    hotel_id=hotel_id,
                    business_date=business_date,
                    status=AuditStatus.IN_PROGRESS.value,
                    phase=AuditPhase.REVIEWING.value,
                    version=1,
                    started_at=now,
                    run_by=usuario,
                )
                db.add(audit)
                db.flush()
            record_action(db, hotel_id, "night_audit", audit.id, "AUDIT_START", usuario,
                          f"Inicio auditoría {business_date.isoformat()}")
            return audit

        try:
            audit = run_in_transaction(db, work, area="auditoria")
        except IntegrityError:
            raise AuditAlreadyRunning(
                f"Ya existe una auditoría para {business_date.isoformat()}", business_date=business_date.isoformat(),
            )

        event_bus.publish(AuditPhaseChanged(
            hotel_id=hotel_id, audit_id=audit.id, business_date=business_date,
            old_phase=AuditPhase.IDLE.value, new_phase=AuditPhase.REVIEWING.value,
        ))
        log_event("auditoria", usuario, "Iniciar auditoría", f"audit={audit.id} fecha={business_date}")
        return audit

    @staticmethod
    def pre_audit_checklist(db: Session, hotel_id: int) -> dict:
        """Checklist previo. Es informativo: nunca bloquea la auditoría."""
        business_date = BusinessDateService.current(db, hotel_id)

        candidates = ReservationService.no_show_candidates(db, hotel_id, business_date)
        pending_arrivals = [r for r in candidates if r.check_in_date == business_date]
        overdue_arrivals = [r for r in candidates if r.check_in_date < business_date]

        open_pos = db.query(PosOrder).filter(
            PosOrder.hotel_id == hotel_id, PosOrder.status == PosOrderStatus.OPEN.value
        ).all()

        departed_folios = db.query(Folio).join(Reservation, Folio.reservation_id == Reservation.id).filter(
            Folio.hotel_id == hotel_id,
            Folio.status == FolioStatus.OPEN.value,
            Reservation.status == ReservationStatus.CHECKED_OUT.value,
        ).all()
        departed_with_balance = [f for f in departed_folios if f.calculate_balance() > 0]

        pending_hk = HousekeepingService.pending_tasks(db, hotel_id, business_date)

        def item(key, label, refs):
            return {"key": key, "label": label, "count": len(refs), "complete": not refs, "references": refs}

        items = [
            item("pending_arrivals", "Llegadas del día sin check-in", [r.id for r in pending_arrivals]),
            item("overdue_arrivals", "Llegadas vencidas sin marcar no-show", [r.id for r in overdue_arrivals]),
            item("unposted_pos_orders", "Consumos POS sin cargar a folio", [o.id for o in open_pos]),
            item("departures_with_balance", "Salidas con saldo pendiente", [f.id for f in departed_with_balance]),
            item("pending_housekeeping", "Tareas de housekeeping pendientes", [t.id for t in pending_hk]),
        ]
        return {
            "business_date": business_date,
            "ready": all(i["complete"] for i in items),
            "items": items,
        }

    @staticmethod
    def cancel_audit(db: Session, hotel_id: int, usuario: str = "sistema") -> NightAudit:
        """Vuelve a idle. Sólo antes de que empiece el posteo."""
        audit = NightAuditService._require_in_progress(db, hotel_id)
        if audit.phase not in (AuditPhase.REVIEWING.value, AuditPhase.CONFIRMING.value):
            raise InvalidTransition(
                f"No se puede cancelar la auditoría en fase {audit.phase}",
                current=audit.phase, target=AuditPhase.IDLE.value,
            )
        old_phase = audit.phase
        audit_id = audit.id

        def work():
            rows = (
                db.query(NightAudit)
                .filter(
                    NightAudit.id == audit_id,
                    NightAudit.phase.in_([AuditPhase.REVIEWING.value, AuditPhase.CONFIRMING.value]),
                )
                .update(
                    {
                        "status": AuditStatus.PENDING.value,
                        "phase": AuditPhase.IDLE.value,
                        "posting_token": None,
                        "version": NightAudit.version + 1,
                        "updated_at": utc_now(),
                    },
                    synchronize_session=False,
                )
            )
            if rows == 0:
                raise ConcurrentModification("La auditoría avanzó mientras se cancelaba", audit_id=audit_id)
            record_action(db, hotel_id, "night_audit", audit_id, "AUDIT_CANCEL", usuario, f"Cancelada en {old_phase}")

        run_in_transaction(db, work, area="auditoria")
        db.refresh(audit)
        event_bus.publish(AuditPhaseChanged(
            hotel_id=hotel_id, audit_id=audit.id, business_date=audit.business_date,
            old_phase=old_phase, new_phase=AuditPhase.IDLE.value,
        ))
        log_event("auditoria", usuario, "Cancelar auditoría", f"audit={audit.id}")
        return audit

    # ========================================================================
    # POSTEO DE NOCHES
    # ========================================================================

    @staticmethod
    def _chargeable_rooms(
        db: Session, hotel_id: int, business_date: date
    ) -> Tuple[List[Tuple[Room, ReservationRoom]], List[dict]]:
        """Habitaciones ocupadas por un segmento vigente en la fecha; el resto se informa como excepción"""
        rooms = db.query(Room).filter(
            Room.hotel_id == hotel_id,
            Room.is_active.is_(True),
            Room.status == RoomStatus.OCCUPIED.value,
        ).order_by(Room.room_number).all()

        chargeable, exceptions = [], []
        for room in rooms:
            segment = None
            if room.current_reservation_room_id:
                segment = db.query(ReservationRoom).filter(
                    ReservationRoom.id == room.current_reservation_room_id
                ).first()
            if not segment or segment.reservation.status != ReservationStatus.CHECKED_IN.value:
                reason = "Habitación ocupada sin estadía en casa"
            elif not segment.start_date <= business_date < segment.end_date:
                reason = f"Estadía sin segmento vigente para {business_date.isoformat()}"
            else:
                chargeable.append((room, segment))
                continue
            exceptions.append({"room_id": room.id, "room_number": room.room_number, "reason": reason})
        return chargeable, exceptions

    @staticmethod
    def _posted_nights(db: Session, hotel_id: int, business_date: date) -> Tuple[int, set, set]:
        """
        Noches ya posteadas para la fecha (anuladas incluidas).

        Returns:
            (cantidad, segmentos cargados, habitaciones cargadas)
        """
        prefix = f"room:{hotel_id}:{business_date.isoformat()}:"
        rows = db.query(FolioLineItem.room_id, FolioLineItem.reservation_room_id).filter(
            FolioLineItem.hotel_id == hotel_id,
            FolioLineItem.service_date == business_date,
            FolioLineItem.category == LineItemCategory.ROOM.value,
            or_(FolioLineItem.posting_key.like(f"{prefix}%"), FolioLineItem.reservation_room_id.isnot(None)),
        ).all()
        segments = {segment_id for _, segment_id in rows if segment_id is not None}
        rooms = {room_id for room_id, _ in rows if room_id is not None}
        return len(rows), segments, rooms

    @staticmethod
    def _pending_nights(
        db: Session, hotel_id: int, business_date: date
    ) -> Tuple[int, List[Tuple[int, int]], List[dict]]:
        """
        Una habitación está pendiente si ni su segmento ni la habitación
        tienen ya la noche cargada (mismo criterio que el control de duplicados).

        Returns:
            (posteadas, [(room_id, segment_id)] pendientes, excepciones)
        """
        chargeable, exceptions = NightAuditService._chargeable_rooms(db, hotel_id, business_date)
        posted, segments, rooms = NightAuditService._posted_nights(db, hotel_id, business_date)
        pending = [
            (room.id, segment.id) for room, segment in chargeable
            if segment.id not in segments and room.id not in rooms
        ]
        return posted, pending, exceptions

    @staticmethod
    def _post_room_charge(
        db: Session, hotel_id: int, business_date: date, room_id: int, segment_id: int, usuario: str
    ) -> Tuple[str, Optional[dict]]:
        """
        Postea la noche de una habitación en su propia transacción.

        Returns:
            ("posted" | "duplicate" | "exception", detalle)
        """
        key = room_posting_key(hotel_id, business_date, room_id)

        def work():
            existing = db.query(FolioLineItem.id).filter(
                or_(
                    FolioLineItem.posting_key == key,
                    and_(
                        FolioLineItem.reservation_room_id == segment_id,
                        FolioLineItem.service_date == business_date,
                        FolioLineItem.category == LineItemCategory.ROOM.value,
                    ),
                )
            ).first()
            if existing:
                raise DuplicatePosting(f"Noche ya posteada ({key})", posting_key=key)

            room = db.query(Room).filter(Room.id == room_id).first()
            if room.status != RoomStatus.OCCUPIED.value or room.current_reservation_room_id != segment_id:
                raise InvalidTransition(
                    f"Habitación {room.room_number} ya no está ocupada por la estadía",
                    current=room.status, target="room_charge",
                )
            segment = db.query(ReservationRoom).filter(ReservationRoom.id == segment_id).first()
            folio = FolioService.get_for_reservation(db, segment.reservation_id)
            if folio is None:
                folio = FolioService.get_or_create_for_reservation(db, segment.reservation, usuario)
            folio = FolioService.get_folio(db, hotel_id, folio.id, lock=True)

            rate, source = RateResolver.nightly_rate(db, hotel_id, segment, business_date)
            if source == "missing":
                raise ValidationFailed(f"Habitación {room.room_number} sin tarifa resoluble", room_id=room_id)

            item = FolioService.apply_line_item(
                db, folio, LineItemCategory.ROOM, rate, usuario,
                description=f"Noche {business_date.isoformat()} - Hab. {room.room_number}",
                service_date=business_date,
                room_id=room_id,
                reservation_room_id=segment_id,
                posting_key=key,
            )
            return folio, item

        try:
            folio, item = run_in_transaction(db, work, area="auditoria")
        except (IntegrityError, DuplicatePosting):
            log_warning("auditoria", usuario, "Noche ya posteada", key)
            return "duplicate", None
        except (PersistenceFailure, ConcurrentModification):
            raise
        except HotelError as exc:
            log_warning("auditoria", usuario, "Habitación no posteada", f"room_id={room_id}: {exc.message}")
            return "exception", {"room_id": room_id, "reason": exc.message}

        event_bus.publish(FolioUpdated(
            hotel_id=hotel_id, folio_id=folio.id, folio_number=folio.folio_number,
            reason="room_charge_posted", balance=folio.calculate_balance(), status=folio.status,
        ))
        return "posted", {"room_id": room_id, "line_item_id": item.id, "amount": item.amount}

    @staticmethod
    def post_room_charges(
        db: Session, hotel_id: int, usuario: str = "sistema", posting_token: Optional[str] = None
    ) -> PostingResult:
        """
        Postea la noche de cada habitación ocupada. Reejecutable en posting/settling:
        el conjunto final de cargos es siempre el mismo.

        Al reanudar, si se informa posting_token debe coincidir con el de la
        corrida en curso.
        """
        audit = NightAuditService._require_in_progress(db, hotel_id)
        audit_id = audit.id
        business_date = audit.business_date

        if audit.phase in (AuditPhase.POSTING.value, AuditPhase.SETTLING.value):
            if posting_token is not None and posting_token != audit.posting_token:
                raise InvalidTransition(
                    "El token de posteo no corresponde a la corrida en curso",
                    current=audit.phase, target=AuditPhase.POSTING.value, posting_token=posting_token,
                )

        if audit.phase == AuditPhase.REVIEWING.value:
            checklist = NightAuditService.pre_audit_checklist(db, hotel_id)
            carried_over = [i["key"] for i in checklist["items"] if not i["complete"]]
            report = dict(audit.report_data or {})
            report["checklist"] = _jsonable(checklist)
            report["carried_over"] = carried_over
            if carried_over:
                log_warning("auditoria", usuario, "Checklist incompleto", f"pendientes={carried_over}")
            audit = NightAuditService._advance_phase(
                db, hotel_id, audit_id, AuditPhase.REVIEWING, AuditPhase.CONFIRMING, usuario,
                posting_token=uuid.uuid4().hex, report_data=report,
            )
        if audit.phase == AuditPhase.CONFIRMING.value:
            audit = NightAuditService._advance_phase(
                db, hotel_id, audit_id, AuditPhase.CONFIRMING, AuditPhase.POSTING, usuario,
            )
        if audit.phase not in (AuditPhase.POSTING.value, AuditPhase.SETTLING.value):
            raise InvalidTransition(
                f"No se pueden postear noches en fase {audit.phase}",
                current=audit.phase, target=AuditPhase.POSTING.value,
            )

        # Estadías de varios segmentos: pasar a la habitación del segmento que empieza hoy
        exceptions = ReservationService.roll_segments(db, hotel_id, business_date, usuario)

        posted_before, pending, room_exceptions = NightAuditService._pending_nights(db, hotel_id, business_date)
        exceptions += room_exceptions
        total = posted_before + len(pending)

        def store_total():
            db.query(NightAudit).filter(NightAudit.id == audit_id).update(
                {"rooms_to_charge": total}, synchronize_session=False
            )

        run_in_transaction(db, store_total, area="auditoria")

        result = PostingResult(audit_id=audit_id, business_date=business_date, phase=audit.phase,
                               already_posted=posted_before, posting_token=audit.posting_token)
        failed_rooms = set()
        for room_id, segment_id in pending:
            outcome, detail = NightAuditService._post_room_charge(
                db, hotel_id, business_date, room_id, segment_id, usuario
            )
            if outcome == "posted":
                result.posted += 1
            elif outcome == "duplicate":
                result.already_posted += 1
            else:
                exceptions.append(detail)
                failed_rooms.add(room_id)

        posted_count, remaining, _ = NightAuditService._pending_nights(db, hotel_id, business_date)
        remaining = [(room_id, segment_id) for room_id, segment_id in remaining if room_id not in failed_rooms]
        total = posted_count + len(remaining)
        result.total = total
        result.exceptions = exceptions

        audit = db.query(NightAudit).filter(NightAudit.id == audit_id).first()
        report = dict(audit.report_data or {})
        report["posting_exceptions"] = _jsonable(exceptions)
        counters = {"rooms_to_charge": total, "rooms_charged": posted_count, "report_data": report}

        if audit.phase == AuditPhase.POSTING.value and not remaining:
            audit = NightAuditService._advance_phase(
                db, hotel_id, audit_id, AuditPhase.POSTING, AuditPhase.SETTLING, usuario, **counters
            )
        else:
            def store_counters():
                db.query(NightAudit).filter(NightAudit.id == audit_id).update(counters, synchronize_session=False)

            run_in_transaction(db, store_counters, area="auditoria")
            db.refresh(audit)

        result.phase = audit.phase
        log_event(
            "auditoria", usuario, "Postear noches",
            f"audit={audit_id} nuevas={result.posted} previas={result.already_posted} "
            f"total={total} excepciones={len(exceptions)}",
        )
        return result

    @staticmethod
    def posting_progress(db: Session, hotel_id: int) -> dict:
        audit = NightAuditService.get_current(db, hotel_id)
        business_date = BusinessDateService.current(db, hotel_id)
        if not audit:
            return {"audit_id": None, "business_date": business_date, "phase": AuditPhase.IDLE.value,
                    "status": AuditStatus.PENDING.value, "posted": 0, "total": 0, "pending": 0}
        posted, pending, _ = NightAuditService._pending_nights(db, hotel_id, audit.business_date)
        # Las habitaciones informadas como excepción no cuentan como pendientes
        failed = {e.get("room_id") for e in (audit.report_data or {}).get("posting_exceptions", [])}
        pending = [(room_id, segment_id) for room_id, segment_id in pending if room_id not in failed]
        return {
            "audit_id": audit.id,
            "business_date": audit.business_date,
            "phase": audit.phase,
            "status": audit.status,
            "posted": posted,
            "total": posted + len(pending),
            "pending": len(pending),
        }

    # ========================================================================
    # ESTADÍSTICAS Y CIERRE
    # ========================================================================

    @staticmethod
    def compute_statistics(db: Session, hotel_id: int, business_date: date) -> AuditStatistics:
        stats = AuditStatistics(business_date=business_date)

        stats.total_rooms = db.query(func.count(Room.id)).filter(
            Room.hotel_id == hotel_id, Room.is_active.is_(True)
        ).scalar() or 0

        # Habitaciones noche: cargos automáticos de la fecha (incluye anulados: la habitación se ocupó)
        stats.occupied_rooms = db.query(func.count(func.distinct(FolioLineItem.room_id))).filter(
            FolioLineItem.hotel_id == hotel_id,
            FolioLineItem.service_date == business_date,
            FolioLineItem.category == LineItemCategory.ROOM.value,
            FolioLineItem.posting_key.isnot(None),
        ).scalar() or 0
        stats.vacant_rooms = max(stats.total_rooms - stats.occupied_rooms, 0)

        rows = db.query(
            FolioLineItem.category,
            func.sum(FolioLineItem.amount),
            func.sum(FolioLineItem.tax_amount),
            func.sum(FolioLineItem.service_charge_amount),
        ).filter(
            FolioLineItem.hotel_id == hotel_id,
            FolioLineItem.service_date == business_date,
            FolioLineItem.voided.is_(False),
        ).group_by(FolioLineItem.category).all()

        other = ZERO
        for category, amount, tax, service in rows:
            amount = quantize(amount or 0)
            stats.total_tax += quantize(tax or 0)
            stats.total_service_charge += quantize(service or 0)
            if category == LineItemCategory.ROOM.value:
                stats.room_revenue += amount
            elif category == LineItemCategory.FOOD_BEVERAGE.value:
                stats.fb_revenue += amount
            else:
                other += amount
        stats.other_revenue = other
        stats.total_revenue = stats.room_revenue + stats.fb_revenue + stats.other_revenue

        payments = db.query(func.sum(FolioPayment.amount)).filter(
            FolioPayment.hotel_id == hotel_id,
            FolioPayment.business_date == business_date,
            FolioPayment.voided.is_(False),
        ).scalar()
        stats.total_payments = quantize(payments or 0)

        if stats.total_rooms:
            stats.occupancy_rate = quantize(Decimal(stats.occupied_rooms) / Decimal(stats.total_rooms) * 100)
            stats.revpar = quantize(stats.room_revenue / Decimal(stats.total_rooms))
        if stats.occupied_rooms:
            stats.adr = quantize(stats.room_revenue / Decimal(stats.occupied_rooms))

        def count_reservations(*criteria):
            return db.query(func.count(Reservation.id)).filter(Reservation.hotel_id == hotel_id, *criteria).scalar() or 0

        stats.arrivals = count_reservations(
            Reservation.check_in_date == business_date,
            Reservation.status.in_([ReservationStatus.CHECKED_IN.value, ReservationStatus.CHECKED_OUT.value]),
        )
        stats.departures = count_reservations(
            Reservation.check_out_date == business_date,
            Reservation.status == ReservationStatus.CHECKED_OUT.value,
        )
        stats.no_shows = count_reservations(
            Reservation.check_in_date == business_date,
            Reservation.status == ReservationStatus.NO_SHOW.value,
        )
        stats.stayovers = max(stats.occupied_rooms - stats.arrivals, 0)
        return stats

    @staticmethod
    def complete_audit(db: Session, hotel_id: int, usuario: str = "sistema", notes: Optional[str] = None) -> NightAudit:
        """
        Cierra la auditoría: estadísticas, historial y avance de la fecha
        operativa en una sola transacción. Sólo desde 'settling'.
        """
        settings = HotelService.get_settings(db, hotel_id)

        def work():
            audit = NightAuditService._require_in_progress(db, hotel_id)
            if audit.phase != AuditPhase.SETTLING.value:
                raise InvalidTransition(
                    f"La auditoría está en fase {audit.phase}: se requiere settling",
                    current=audit.phase, target=AuditPhase.COMPLETE.value,
                )
            business_date = audit.business_date

            # Reclamo de escritor único: sólo una llamada pasa settling -> completing
            rows = (
                db.query(NightAudit)
                .filter(
                    NightAudit.id == audit.id,
                    NightAudit.phase == AuditPhase.SETTLING.value,
                    NightAudit.version == audit.version,
                )
                .update(
                    {"phase": AuditPhase.COMPLETING.value, "version": NightAudit.version + 1},
                    synchronize_session=False,
                )
            )
            if rows == 0:
                raise ConcurrentModification("Otra operación está completando la auditoría", audit_id=audit.id)
            db.refresh(audit)

            stats = NightAuditService.compute_statistics(db, hotel_id, business_date)
            outstanding = FolioService.outstanding_folios(db, hotel_id)
            if outstanding and not settings.allow_audit_with_outstanding_folios:
                raise OutstandingBalance(
                    f"Hay {len(outstanding)} folios con saldo pendiente",
                    folio_ids=[f["folio_id"] for f in outstanding],
                )

            report = dict(audit.report_data or {})
            report.update({
                "statistics": _jsonable(stats.to_dict()),
                "outstanding_folios": _jsonable(outstanding),
                "payments_by_method": _jsonable(FolioService.payments_by_method(db, hotel_id, business_date)),
            })

            audit.status = AuditStatus.COMPLETED.value
            audit.phase = AuditPhase.COMPLETE.value
            audit.version = audit.version + 1
            audit.completed_at = utc_now()
            audit.notes = notes
            audit.occupied_rooms = stats.occupied_rooms
            audit.total_room_revenue = stats.room_revenue
            audit.total_fb_revenue = stats.fb_revenue
            audit.total_other_revenue = stats.other_revenue
            audit.total_revenue = stats.total_revenue
            audit.total_payments = stats.total_payments
            audit.occupancy_rate = stats.occupancy_rate
            audit.adr = stats.adr
            audit.revpar = stats.revpar
            audit.report_data = report
            db.flush()

            AuditHistoryService.record(db, audit, stats, len(outstanding))
            new_date = BusinessDateService.advance(db, hotel_id, business_date)
            record_action(db, hotel_id, "night_audit", audit.id, "AUDIT_COMPLETE", usuario,
                          f"Auditoría {business_date.isoformat()} completada",
                          {"new_business_date": new_date.isoformat(), "outstanding_folios": len(outstanding)})
            return audit, stats, new_date, outstanding

        audit, stats, new_date, outstanding = run_in_transaction(db, work, area="auditoria")

        if outstanding:
            log_warning("auditoria", usuario, "Folios con saldo al cierre",
                        f"audit={audit.id} folios={[f['folio_number'] for f in outstanding]}")
        event_bus.publish_all([
            AuditPhaseChanged(hotel_id=hotel_id, audit_id=audit.id, business_date=audit.business_date,
                              old_phase=AuditPhase.SETTLING.value, new_phase=AuditPhase.COMPLETING.value),
            AuditPhaseChanged(hotel_id=hotel_id, audit_id=audit.id, business_date=audit.business_date,
                              old_phase=AuditPhase.COMPLETING.value, new_phase=AuditPhase.COMPLETE.value),
            BusinessDateAdvanced(hotel_id=hotel_id, old_date=audit.business_date, new_date=new_date),
        ])
        log_event(
            "auditoria", usuario, "Completar auditoría",
            f"audit={audit.id} fecha={audit.business_date} ocupacion={stats.occupancy_rate}% "
            f"adr={stats.adr} revpar={stats.revpar} nueva_fecha={new_date}",
        )
        return audit
