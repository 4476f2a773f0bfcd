from fastapi import Request

from ....workers.saga_supervisor import SagaSupervisor

def get_supervisor(request: Request) -> SagaSupervisor:
    """
    Resolve the started supervisor from FastAPI app state.
    """
    supervisor = getattr(request.app.state, "supervisor", None)
    if supervisor is None or supervisor.saga_driver is None:
        raise RuntimeError("Supervisor is not started in app.state.supervisor")
    return supervisor
