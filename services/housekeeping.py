from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from models.core import HousekeepingTask, HousekeepingStatus, RoomStatus
from services.audit_trail import record_action
from services.errors import InvalidTransition, NotFound
from services.room_state import RoomStateService
from utils.events import event_bus
from utils.logging_utils import log_event
from utils.timezone import utc_now
from utils.transactions import run_in_transaction


class HousekeepingService:

    @staticmethod
    def list_tasks(db: Session, hotel_id: int, status: Optional[str] = None,
                   task_date: Optional[date] = None) -> List[HousekeepingTask]:
        query = db.query(HousekeepingTask).filter(HousekeepingTask.hotel_id == hotel_id)
        if status:
            query = query.filter(HousekeepingTask.status == status)
        if task_date:
            query = query.filter(HousekeepingTask.task_date == task_date)
        return query.order_by(HousekeepingTask.task_date, HousekeepingTask.id).all()

    @staticmethod
    def pending_tasks(db: Session, hotel_id: int, up_to: date) -> List[HousekeepingTask]:
        return db.query(HousekeepingTask).filter(
            HousekeepingTask.hotel_id == hotel_id,
            HousekeepingTask.status != HousekeepingStatus.DONE.value,
            HousekeepingTask.task_date <= up_to,
        ).all()

    @staticmethod
    def complete_task(db: Session, hotel_id: int, task_id: int, usuario: str = "sistema") -> HousekeepingTask:
        """Marca la tarea como hecha; si la habitación estaba sucia pasa a vacant."""
        def work():
            task = db.query(HousekeepingTask).filter(
                HousekeepingTask.id == task_id, HousekeepingTask.hotel_id == hotel_id
            ).first()
            if not task:
                raise NotFound(f"Tarea {task_id} no encontrada", task_id=task_id)
            if task.status == HousekeepingStatus.DONE.value:
                raise InvalidTransition(f"La tarea {task_id} ya está finalizada", current=task.status, target="done")
            task.status = HousekeepingStatus.DONE.value
            task.done_at = utc_now()
            record_action(db, hotel_id, "room", task.room_id, "HK_DONE", usuario, f"Tarea {task.task_type} finalizada")

            events = []
            room = RoomStateService.get_room(db, hotel_id, task.room_id)
            if room.status == RoomStatus.DIRTY.value:
                _, events = RoomStateService.apply_status(db, hotel_id, room.id, RoomStatus.VACANT, usuario)
            return task, events

        task, events = run_in_transaction(db, work, area="housekeeping")
        event_bus.publish_all(events)
        log_event("housekeeping", usuario, "Finalizar tarea", f"tarea={task.id} room_id={task.room_id}")
        return task
