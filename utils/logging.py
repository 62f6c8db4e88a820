import logging
import logging.handlers
import json
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any
from fastapi import Request


class GatewayLogger:
    """Gateway logger with request tracking and upstream call statistics"""

    def __init__(self,
                 log_file: str = "logs/app.log",
                 max_file_size: int = 10 * 1024 * 1024,  # 10MB
                 backup_count: int = 5,
                 log_level: str = "INFO"):

        self.log_file = log_file
        self.max_file_size = max_file_size
        self.backup_count = backup_count

        log_dir = Path(log_file).parent
        log_dir.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger("codesplain")
        self.logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
        self.logger.propagate = False

        # Remove existing handlers to avoid duplicates
        self.logger.handlers.clear()

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size,
            backupCount=backup_count,
            encoding='utf-8'
        )
        console_handler = logging.StreamHandler()

        formatter = logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)-20s | %(funcName)-15s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        file_handler.setFormatter(formatter)
        console_handler.setFormatter(formatter)

        self.logger.addHandler(file_handler)
        self.logger.addHandler(console_handler)

        self.request_stats = {
            "total_requests": 0,
            "rate_limited": 0,
            "upstream_calls": 0,
            "upstream_failures": 0,
            "start_time": time.time()
        }

        self.logger.info("🚀 Gateway logging initialized")
        self.logger.info(f"📁 Log file: {log_file}")

    def log_request_start(self, request: Request, endpoint: str):
        """Log the start of a request and return its context"""
        client_ip = request.client.host if request.client else "unknown"
        user_agent = request.headers.get("user-agent", "unknown")

        request_info = {
            "endpoint": endpoint,
            "method": request.method,
            "client_ip": client_ip,
            "user_agent": user_agent[:100],
            "timestamp": datetime.now().isoformat()
        }

        self.logger.info(f"🔵 REQUEST START | {endpoint} | IP: {client_ip}")
        return request_info

    def log_request_end(self, request_info: Dict[str, Any], duration_ms: float, status_code: int = 200):
        """Log the end of a request with its duration"""
        self.request_stats["total_requests"] += 1

        status_emoji = "✅" if status_code < 400 else "❌"

        self.logger.info(
            f"{status_emoji} REQUEST END | {request_info['endpoint']} | IP: {request_info['client_ip']} | "
            f"Duration: {duration_ms:.2f}ms | Status: {status_code}"
        )

    def log_ai_request(self, model: str, language: str, code_length: int, duration_ms: float, success: bool = True):
        """Log a call to the completion service"""
        self.request_stats["upstream_calls"] += 1
        if not success:
            self.request_stats["upstream_failures"] += 1

        self.logger.info(
            f"🤖 AI REQUEST | {model} | Language: {language} | Code: {code_length} chars | "
            f"Duration: {duration_ms:.2f}ms | Success: {success}"
        )

    def log_rate_limited(self, client_key: str, endpoint: str, count: int):
        self.request_stats["rate_limited"] += 1
        self.logger.warning(f"🚫 RATE LIMITED | {endpoint} | Client: {client_key} | Count: {count}")

    def log_error(self, error: Exception, endpoint: str, extra_context: Optional[Dict] = None):
        """Log errors with context and traceback"""
        context = f" | Context: {json.dumps(extra_context, default=str)}" if extra_context else ""

        self.logger.error(
            f"💥 ERROR | {endpoint} | {type(error).__name__}: {str(error)}{context}",
            exc_info=error
        )

    def get_request_stats(self) -> Dict[str, Any]:
        uptime_hours = (time.time() - self.request_stats["start_time"]) / 3600

        return {
            "total_requests": self.request_stats["total_requests"],
            "rate_limited": self.request_stats["rate_limited"],
            "upstream_calls": self.request_stats["upstream_calls"],
            "upstream_failures": self.request_stats["upstream_failures"],
            "requests_per_hour": round(self.request_stats["total_requests"] / max(uptime_hours, 0.01), 2),
            "uptime_hours": round(uptime_hours, 2),
            "log_file": self.log_file,
            "log_file_size_mb": round(os.path.getsize(self.log_file) / (1024*1024), 2) if os.path.exists(self.log_file) else 0
        }

    def log_periodic_stats(self):
        stats = self.get_request_stats()

        self.logger.info(
            f"📊 PERIODIC STATS | Requests: {stats['total_requests']} | "
            f"Rate limited: {stats['rate_limited']} | "
            f"Upstream: {stats['upstream_calls']} ({stats['upstream_failures']} failed) | "
            f"Uptime: {stats['uptime_hours']}h"
        )


# Global logger instance
gateway_logger = GatewayLogger(
    log_file=os.getenv("LOG_FILE", "logs/app.log"),
    log_level=os.getenv("LOG_LEVEL", "INFO")
)


def log_request_start(request: Request, endpoint: str):
    return gateway_logger.log_request_start(request, endpoint)

def log_request_end(request_info: Dict[str, Any], duration_ms: float, status_code: int = 200):
    gateway_logger.log_request_end(request_info, duration_ms, status_code)

def log_ai_request(model: str, language: str, code_length: int, duration_ms: float, success: bool = True):
    gateway_logger.log_ai_request(model, language, code_length, duration_ms, success)

def log_rate_limited(client_key: str, endpoint: str, count: int):
    gateway_logger.log_rate_limited(client_key, endpoint, count)

def log_error(error: Exception, endpoint: str, extra_context: Optional[Dict] = None):
    gateway_logger.log_error(error, endpoint, extra_context)

def log_periodic_stats():
    gateway_logger.log_periodic_stats()
