import logging, json, sys, os


class JsonFormatter(logging.Formatter):
    def format(self, record):
        d = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "lvl": record.levelname,
            "name": record.name,
        }
        if isinstance(record.msg, dict):
            # log.info({"event": "...", ...}) style
            d.update(record.msg)
        else:
            d["msg"] = record.getMessage()
            if record.args and isinstance(record.args, dict):
                d.update(record.args)
        if record.exc_info:
            d["exc"] = self.formatException(record.exc_info)
        return json.dumps(d, ensure_ascii=False, default=str)


def get_logger(name="callrelay"):
    log = logging.getLogger(name)
    if not log.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(JsonFormatter())
        log.addHandler(h)
        level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
        log.setLevel(level)
    return log
