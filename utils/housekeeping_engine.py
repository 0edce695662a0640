from datetime import date
from typing import List

from sqlalchemy.orm import Session
from models.core import HousekeepingTask, HousekeepingStatus, Reservation


def generate_checkout_tasks(
    db: Session,
    reservation: Reservation,
    room_ids: List[int],
    task_date: date,
) -> List[HousekeepingTask]:
    """
    Genera una tarea de limpieza de tipo 'checkout' por cada habitación liberada.
    Idempotente: si ya existe la tarea (habitación, día, tipo) se reutiliza.
    No hace commit: corre dentro de la transacción del check-out.

    Args:
        reservation: La reserva que hace check-out.
        room_ids: Habitaciones que quedan sucias.
        task_date: Fecha operativa de la salida.

    Returns:
        Tareas creadas o existentes, una por habitación.
    """
    tasks = []
    for room_id in dict.fromkeys(room_ids):
        existing_task = db.query(HousekeepingTask).filter(
            HousekeepingTask.room_id == room_id,
            HousekeepingTask.task_date == task_date,
            HousekeepingTask.task_type == "checkout",
        ).first()

        if existing_task:
            tasks.append(existing_task)
            continue

        task = HousekeepingTask(
            hotel_id=reservation.hotel_id,
            room_id=room_id,
            reservation_id=reservation.id,
            task_date=task_date,
            task_type="checkout",
            status=HousekeepingStatus.PENDING.value,
            priority="alta",
            notes=f"Salida reserva {reservation.confirmation_number}",
        )
        db.add(task)
        tasks.append(task)

    db.flush()
    return tasks
