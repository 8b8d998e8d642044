"""
Cluster alarm raising shared by the control loop, engine and executor.
"""
import logging

from ..errors import RestResponseError, TransportError
from ..session import Session

ALARM_KEY = "NODE_ALARM_SERVICE_VOLUME-MANAGER_DOWN"


def raise_alarm(cluster, session: Session, description: str, logger: logging.Logger) -> bool:
    """
    Raises the volume manager alarm on the cluster, best effort.

    A transport failure moves the session to the next endpoint; it is not
    counted as a consecutive failure.

    Returns:
        True if the cluster accepted the alarm.
    """
    logger.info(f"Raising alarm {ALARM_KEY}: [{description}]")
    try:
        cluster.raise_alarm(ALARM_KEY, description)
        return True
    except TransportError as e:
        logger.error(f"Could not raise alarm on {session.endpoint}: {e}")
        session.failover()
    except RestResponseError as e:
        logger.error(f"Cluster rejected alarm: {e}")
    return False
