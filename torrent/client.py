"""
Distribution engine adapter over a libtorrent session.

Exposes the narrow surface the reconciliation core consumes: listen,
identity, feature toggles, descriptor parsing, asynchronous seed submission,
seed removal, and a pollable event queue.
"""

import os
from typing import Optional

import libtorrent as lt

from registry.models import ContentDescriptor, EngineEvent, SEED_FAILED, SEED_STARTED, SEED_STOPPED
from shared.log import create_logger
from torrent.exceptions import EngineRejection, InvalidDescriptor, translate_engine_exception

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Engine")

# Seconds to wait for a listen_succeeded/listen_failed alert per port
BIND_TIMEOUT = 2.0


class TorrentEngine:
    """
    Thin wrapper around libtorrent.session.

    Args:
        save_path: Directory where seeded payload files live
        session: Optional pre-built session (tests)
    """

    def __init__(self, save_path: str, session=None):
        self.save_path = save_path
        if session is None:
            session = lt.session({
                'alert_mask': lt.alert.category_t.status_notification | lt.alert.category_t.error_notification,
                'listen_interfaces': '',
            })
        self._session = session

    @property
    def session(self):
        return self._session

    def listen(self, port_min: int, port_max: int, bind_address: str) -> int:
        """
        Open the listen socket on the first free port in [port_min, port_max].

        Returns:
            The bound port

        Raises:
            EngineRejection: If no port in the range can be bound
        """
        last_error = "no ports tried"
        for port in range(port_min, port_max + 1):
            self._session.apply_settings({'listen_interfaces': f"{bind_address}:{port}"})
            ok, error = self._wait_for_listen()
            if ok:
                log_info(f"Listening on {bind_address}:{port}")
                return port
            last_error = error
            log_trace(f"Unable to listen on {bind_address}:{port}: {error}")
        raise EngineRejection(f"Failed to open listen socket on {bind_address}:{port_min}-{port_max}: {last_error}")

    def _wait_for_listen(self) -> tuple[bool, str]:
        """Wait for the session to report the outcome of a listen attempt."""
        if self._session.wait_for_alert(int(BIND_TIMEOUT * 1000)) is not None:
            for alert in self._session.pop_alerts():
                if isinstance(alert, lt.listen_succeeded_alert):
                    return True, ""
                if isinstance(alert, lt.listen_failed_alert):
                    return False, alert.message()
        if self._session.is_listening():
            return True, ""
        return False, "timed out waiting for listen result"

    def set_identity(self, token: str) -> None:
        """Advertise token as user agent and peer-id prefix."""
        self._session.apply_settings({
            'user_agent': token,
            'peer_fingerprint': token[:20],
        })
        log_debug(f"Engine identity set to '{token}'")

    def configure(
        self,
        nat_traversal: bool = False,
        local_discovery: bool = False,
        upnp: bool = False,
        announce_ip: Optional[str] = None,
        ssl_port: Optional[int] = None,
    ) -> None:
        """Toggle NAT-PMP, local service discovery and UPnP; set announce IP and SSL port."""
        settings = {
            'enable_natpmp': nat_traversal,
            'enable_lsd': local_discovery,
            'enable_upnp': upnp,
        }
        if announce_ip and announce_ip != '0.0.0.0':
            settings['announce_ip'] = announce_ip
        if ssl_port:
            current = self._session.get_settings().get('listen_interfaces', '')
            host = announce_ip or '0.0.0.0'
            settings['listen_interfaces'] = f"{current},{host}:{ssl_port}s" if current else f"{host}:{ssl_port}s"
        self._session.apply_settings(settings)
        log_debug(f"Engine configured: natpmp={nat_traversal}, lsd={local_discovery}, upnp={upnp}")

    def parse_descriptor(self, path: str) -> ContentDescriptor:
        """
        Parse a .torrent file.

        Raises:
            InvalidDescriptor: If libtorrent rejects the file
        """
        try:
            info = lt.torrent_info(path)
        except (RuntimeError, OSError, ValueError) as e:
            raise InvalidDescriptor(f"Error for file '{path}': {e}") from e

        storage = info.files()
        files = tuple(storage.file_path(i) for i in range(storage.num_files()))
        return ContentDescriptor(
            identity=str(info.info_hash()),
            name=info.name(),
            files=files,
            filename=os.path.basename(path),
            path=path,
            source=info,
        )

    def submit_seed(self, descriptor: ContentDescriptor) -> None:
        """
        Queue an asynchronous add of the torrent; completion shows up as an event.

        Raises:
            EngineRejection: If the session refuses the parameters
        """
        try:
            params = lt.add_torrent_params()
            params.ti = descriptor.source if descriptor.source is not None else lt.torrent_info(descriptor.path)
            params.save_path = self.save_path
            self._session.async_add_torrent(params)
        except (RuntimeError, OSError, ValueError) as e:
            raise translate_engine_exception(e, f"submit '{descriptor.filename}'") from e

    def stop_seed(self, identity: str) -> bool:
        """
        Remove the torrent from the session; completion shows up as a seed_stopped event.

        Returns:
            False if the session holds no torrent with this identity

        Raises:
            EngineRejection: If the removal request fails
        """
        try:
            handle = self._session.find_torrent(lt.sha1_hash(bytes.fromhex(identity)))
            if not handle.is_valid():
                return False
            self._session.remove_torrent(handle)
            return True
        except (RuntimeError, OSError, ValueError) as e:
            raise translate_engine_exception(e, f"stop {identity}") from e

    def poll_events(self) -> list[EngineEvent]:
        """Pop pending alerts and convert the ones the core cares about."""
        events = []
        for alert in self._session.pop_alerts():
            event = self._convert_alert(alert)
            if event is not None:
                events.append(event)
            else:
                log_trace(f"Alert: {alert.message()}")
        return events

    def _convert_alert(self, alert) -> Optional[EngineEvent]:
        if isinstance(alert, lt.add_torrent_alert):
            if alert.error.value():
                return EngineEvent(
                    kind=SEED_FAILED,
                    identity=_params_identity(alert.params),
                    name=getattr(alert.params, 'name', ''),
                    message=alert.error.message(),
                )
            handle = alert.handle
            return EngineEvent(
                kind=SEED_STARTED,
                identity=str(handle.info_hash()),
                name=handle.status().name,
            )
        if isinstance(alert, lt.torrent_removed_alert):
            return EngineEvent(kind=SEED_STOPPED, identity=str(alert.info_hash))
        return None


def _params_identity(params) -> str:
    info = getattr(params, 'ti', None)
    if info is None:
        return ""
    return str(info.info_hash())


__all__ = ['TorrentEngine', 'BIND_TIMEOUT']
