# decision_sim/simulation_store.py
import logging

from sqlalchemy.orm import Session, sessionmaker

from decision_sim.entities import Simulation
from decision_sim.exceptions import NotFound
from decision_sim.models import SimulationRecord

logger = logging.getLogger("decision_sim.store")

# Columns a caller may write after creation; id and created_at never change.
UPDATABLE_FIELDS = {"status", "transcript", "analysis"}


class SimulationStore:
    """
    Keyed document collection of simulation records.

    Documents go in and out as camelCase dicts (teamSize, scenario, transcript, ...);
    reads return SimulationRecord models.
    """

    def __init__(self, session_factory: sessionmaker):
        self.SessionFactory = session_factory

    def _to_record(self, row: Simulation) -> SimulationRecord:
        return SimulationRecord.model_validate(
            {
                "id": row.id,
                "teamSize": row.team_size,
                "domain": row.domain,
                "scenario": row.scenario,
                "status": row.status,
                "transcript": list(row.transcript or []),
                "analysis": row.analysis,
                "createdAt": row.created_at,
            }
        )

    def create(self, fields: dict) -> str:
        session: Session = self.SessionFactory()
        try:
            row = Simulation(
                team_size=fields["teamSize"],
                domain=fields["domain"],
                scenario=fields["scenario"],
                status=fields.get("status", "pending"),
                transcript=list(fields.get("transcript") or []),
                analysis=fields.get("analysis"),
            )
            session.add(row)
            session.commit()
            logger.debug("created simulation %s", row.id)
            return row.id
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, simulation_id: str) -> SimulationRecord | None:
        session: Session = self.SessionFactory()
        try:
            row = session.get(Simulation, str(simulation_id))
            if row is None:
                return None
            return self._to_record(row)
        finally:
            session.close()

    def update(self, simulation_id: str, fields: dict) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update simulation fields: {', '.join(sorted(unknown))}")

        session: Session = self.SessionFactory()
        try:
            row = session.get(Simulation, str(simulation_id))
            if row is None:
                raise NotFound(f"Simulation not found: {simulation_id}")

            # JSON columns are replaced wholesale so the ORM sees the change
            if "transcript" in fields:
                row.transcript = list(fields["transcript"])
            if "analysis" in fields:
                row.analysis = dict(fields["analysis"]) if fields["analysis"] is not None else None
            if "status" in fields:
                row.status = fields["status"]
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def list_all(self) -> list[SimulationRecord]:
        session: Session = self.SessionFactory()
        try:
            rows = (
                session.query(Simulation)
                .order_by(Simulation.created_at.desc())
                .all()
            )
            return [self._to_record(row) for row in rows]
        finally:
            session.close()
