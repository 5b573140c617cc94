import base64
import json
import logging
import time
import uuid

import sentry_sdk
import zmq

from scramblery.effects import registry
from scramblery.engine import codec
from scramblery.engine.errors import InvalidParameter, ScrambleryError
from scramblery.engine.pipeline import flush_timing, get_effect_health, get_effect_stats
from scramblery.engine.session import ImageSession
from scramblery.security import (
    validate_chain_depth,
    validate_dimensions,
    validate_upload,
)

logger = logging.getLogger(__name__)


def _coord(message: dict, key: str) -> float:
    value = message.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidParameter(f"{key} must be a number")
    return float(value)


def _decode_message(raw: bytes) -> dict | None:
    """Parse one JSON object frame; None for anything else."""
    try:
        message = json.loads(raw)
    except (ValueError, RecursionError):
        # ValueError covers JSONDecodeError and non UTF-8 bytes
        return None
    return message if isinstance(message, dict) else None


class ZMQServer:
    def __init__(self, project_seed: int = 0):
        self.context = zmq.Context()
        self.socket = self.context.socket(zmq.REP)
        self.socket.setsockopt(zmq.MAXMSGSIZE, 256 * 1024 * 1024)  # raw RGBA uploads
        self.port = self.socket.bind_to_random_port("tcp://127.0.0.1")
        # Dedicated ping socket — never blocked by a long transform
        self.ping_socket = self.context.socket(zmq.REP)
        self.ping_socket.setsockopt(zmq.MAXMSGSIZE, 4096)  # 4 KB limit (pings only)
        self.ping_port = self.ping_socket.bind_to_random_port("tcp://127.0.0.1")
        # Auth token — prevents unauthorized ZMQ access from other local processes
        self.token = str(uuid.uuid4())
        self.start_time = time.time()
        self.running = False
        self.project_seed = project_seed
        self.session = ImageSession(project_seed)
        self.last_frame_ms = 0.0

    def reset_state(self):
        """Drop the loaded image and timing stats without closing sockets.

        Used by session-scoped test fixtures to reset between tests
        while keeping the server running.
        """
        self.session = ImageSession(self.project_seed)
        flush_timing()
        self.last_frame_ms = 0.0

    def _validate_token(self, message: dict) -> str | None:
        """Validate auth token. Returns error message or None if valid."""
        msg_token = message.get("_token")
        if msg_token != self.token:
            return "invalid or missing auth token"
        return None

    def _make_ping_response(self, msg_id: str | None) -> dict:
        return {
            "id": msg_id,
            "status": "alive",
            "uptime_s": round(time.time() - self.start_time, 1),
            "last_frame_ms": self.last_frame_ms,
        }

    def _ping_reply(self, message: dict | None) -> dict:
        if message is None:
            return {"ok": False, "error": "Invalid message format"}
        msg_id = message.get("id")
        token_err = self._validate_token(message)
        if token_err:
            return {"id": msg_id, "ok": False, "error": token_err}
        return self._make_ping_response(msg_id)

    def _frame_response(self, msg_id: str | None, buffer, **extra) -> dict:
        return {
            "id": msg_id,
            "ok": True,
            "width": buffer.width,
            "height": buffer.height,
            "frame_data": codec.encode_png_b64(buffer),
            **extra,
        }

    def handle_message(self, message: dict) -> dict:
        cmd = message.get("cmd")
        msg_id = message.get("id")

        # Auth token required on all commands
        token_err = self._validate_token(message)
        if token_err:
            return {"id": msg_id, "ok": False, "error": token_err}

        if cmd == "ping":
            return self._make_ping_response(msg_id)
        elif cmd == "shutdown":
            self.running = False
            return {"id": msg_id, "ok": True}
        elif cmd == "list_effects":
            return {"id": msg_id, "ok": True, "effects": registry.list_all()}
        elif cmd == "effect_health":
            return {"id": msg_id, "ok": True, **get_effect_health()}
        elif cmd == "effect_stats":
            return {"id": msg_id, "ok": True, "stats": get_effect_stats()}
        elif cmd == "flush_state":
            flush_timing()
            return {"id": msg_id, "ok": True}

        handler = self._session_handlers().get(cmd)
        if handler is None:
            return {"id": msg_id, "ok": False, "error": f"unknown: {cmd}"}
        try:
            t0 = time.time()
            response = handler(message, msg_id)
            self.last_frame_ms = round((time.time() - t0) * 1000, 2)
            return response
        except ScrambleryError as e:
            logger.info("%s rejected: %s", cmd, e)
            return {"id": msg_id, "ok": False, "error": str(e)}

    def _session_handlers(self) -> dict:
        return {
            "import_image": self._handle_import_image,
            "load_buffer": self._handle_load_buffer,
            "apply": self._handle_apply,
            "apply_chain": self._handle_apply_chain,
            "arm_region": self._handle_arm_region,
            "disarm": self._handle_disarm,
            "pointer_press": self._handle_pointer_press,
            "pointer_move": self._handle_pointer_move,
            "pointer_release": self._handle_pointer_release,
            "revert": self._handle_revert,
            "clear": self._handle_clear,
            "frame": self._handle_frame,
        }

    def _handle_import_image(self, message: dict, msg_id: str | None) -> dict:
        if "image_data" in message:
            return self._handle_import_bytes(message, msg_id)

        path = message.get("path")
        if not path:
            return {"id": msg_id, "ok": False, "error": "missing path"}

        # SEC-1: Validate import path
        errors = validate_upload(path)
        if errors:
            return {"id": msg_id, "ok": False, "error": "; ".join(errors)}

        # SEC-2: Pixel cap, checked from the header before decoding
        errors = validate_dimensions(*codec.probe_size(path))
        if errors:
            return {"id": msg_id, "ok": False, "error": "; ".join(errors)}

        self.session.load_path(path)
        return self._frame_response(msg_id, self.session.current)

    def _handle_import_bytes(self, message: dict, msg_id: str | None) -> dict:
        """Encoded file contents sent inline (base64), e.g. from a browser file input."""
        try:
            data = base64.b64decode(message["image_data"], validate=True)
        except (ValueError, TypeError):
            return {"id": msg_id, "ok": False, "error": "image_data is not valid base64"}

        buffer = codec.decode_bytes(data)
        errors = validate_dimensions(buffer.width, buffer.height)
        if errors:
            return {"id": msg_id, "ok": False, "error": "; ".join(errors)}

        self.session.load_buffer(buffer)
        return self._frame_response(msg_id, self.session.current)

    def _handle_load_buffer(self, message: dict, msg_id: str | None) -> dict:
        width = message.get("width")
        height = message.get("height")
        data = message.get("data")
        if data is None:
            return {"id": msg_id, "ok": False, "error": "missing data"}

        errors = validate_dimensions(width, height)
        if errors:
            return {"id": msg_id, "ok": False, "error": "; ".join(errors)}

        buffer = codec.decode_raw_b64(width, height, data)
        self.session.load_buffer(buffer)
        return {"id": msg_id, "ok": True, "width": width, "height": height}

    def _effect_params(self, message: dict) -> tuple[str, dict]:
        effect_id = message.get("effect_id")
        if not effect_id:
            raise InvalidParameter("missing effect_id")
        params = message.get("params", {})
        if not isinstance(params, dict):
            raise InvalidParameter("params must be an object")
        params = ImageSession.resolve_params(effect_id, params, message.get("value"))
        if "seed" in message:
            params["seed"] = message["seed"]
        return effect_id, params

    def _handle_apply(self, message: dict, msg_id: str | None) -> dict:
        effect_id, params = self._effect_params(message)
        result = self.session.apply(effect_id, params, message.get("region"))
        return self._frame_response(msg_id, result)

    def _handle_apply_chain(self, message: dict, msg_id: str | None) -> dict:
        chain = message.get("chain", [])
        if not isinstance(chain, list):
            return {"id": msg_id, "ok": False, "error": "chain must be a list"}

        # SEC-3: Validate chain depth
        errors = validate_chain_depth(chain)
        if errors:
            return {"id": msg_id, "ok": False, "error": "; ".join(errors)}

        result = self.session.apply_chain(chain)
        response = self._frame_response(msg_id, result)
        health = get_effect_health()
        if health["disabled_effects"]:
            response["disabled_effects"] = health["disabled_effects"]
        return response

    def _handle_arm_region(self, message: dict, msg_id: str | None) -> dict:
        effect_id, params = self._effect_params(message)
        self.session.arm_region(effect_id, params)
        return {"id": msg_id, "ok": True, "armed": effect_id}

    def _handle_disarm(self, message: dict, msg_id: str | None) -> dict:
        self.session.disarm()
        return {"id": msg_id, "ok": True}

    def _handle_pointer_press(self, message: dict, msg_id: str | None) -> dict:
        region = self.session.pointer_press(_coord(message, "x"), _coord(message, "y"))
        return self._frame_response(
            msg_id, self.session.preview(region), region=region.to_dict()
        )

    def _handle_pointer_move(self, message: dict, msg_id: str | None) -> dict:
        region = self.session.pointer_move(_coord(message, "x"), _coord(message, "y"))
        if region is None:
            return {"id": msg_id, "ok": True, "region": None}
        return self._frame_response(
            msg_id, self.session.preview(region), region=region.to_dict()
        )

    def _handle_pointer_release(self, message: dict, msg_id: str | None) -> dict:
        region, applied = self.session.pointer_release(
            _coord(message, "x"), _coord(message, "y")
        )
        if region is None:
            return {"id": msg_id, "ok": True, "region": None, "applied": False}
        return self._frame_response(
            msg_id, self.session.current, region=region.to_dict(), applied=applied
        )

    def _handle_revert(self, message: dict, msg_id: str | None) -> dict:
        return self._frame_response(msg_id, self.session.revert())

    def _handle_clear(self, message: dict, msg_id: str | None) -> dict:
        self.session.clear()
        return {"id": msg_id, "ok": True}

    def _handle_frame(self, message: dict, msg_id: str | None) -> dict:
        return self._frame_response(msg_id, self.session.preview())

    def run(self):
        self.running = True
        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)
        poller.register(self.ping_socket, zmq.POLLIN)
        while self.running:
            events = dict(poller.poll(timeout=500))

            # Handle ping socket first (lightweight, never blocked)
            if self.ping_socket in events:
                try:
                    message = _decode_message(self.ping_socket.recv())
                    self.ping_socket.send_json(self._ping_reply(message))
                except zmq.ZMQError:
                    logger.error("ZMQ error on ping socket")
                    break  # socket state is unrecoverable

            # Handle main command socket
            if self.socket in events:
                try:
                    message = _decode_message(self.socket.recv())
                    if message is None:
                        # MUST send reply before next recv (REP protocol)
                        self.socket.send_json(
                            {"ok": False, "error": "Invalid message format"}
                        )
                        continue
                except zmq.ZMQError:
                    logger.error("ZMQ error on main socket")
                    break

                try:
                    response = self.handle_message(message)
                except Exception as e:
                    sentry_sdk.capture_exception(e)
                    logger.error("Unhandled handler error: %s", type(e).__name__)
                    response = {"ok": False, "error": "Internal processing error"}

                self.socket.send_json(response)
        self.close()

    def close(self):
        self.ping_socket.close()
        self.socket.close()
        self.context.term()
