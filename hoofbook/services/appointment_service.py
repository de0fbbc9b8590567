"""
Repositorio de citas. Los caballos asignados viajan dentro del mismo
payload y se reemplazan completos en cada update.
"""

from hoofbook.models import Appointment, AppointmentHorse, EntityType
from hoofbook.schemas.remote import AppointmentDTO, AppointmentHorseDTO
from hoofbook.services.repository_service import CompositeRepository


class AppointmentRepository(CompositeRepository[Appointment]):
    entity_type = EntityType.APPOINTMENT
    model = Appointment
    schema = AppointmentDTO
    children_attr = "horses"
    child_model = AppointmentHorse
    child_schema = AppointmentHorseDTO

    def _build_child(self, entity: Appointment, values: dict) -> AppointmentHorse:
        values = {k: v for k, v in values.items() if k != "appointment_id"}
        return AppointmentHorse(appointment_id=entity.id, **values)
