import logging


class ColorFormatter(logging.Formatter):
    COLORS = {
        logging.DEBUG: "\033[38;21m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33;1m",
        logging.ERROR: "\033[31;1m",
        logging.CRITICAL: "\033[31;1m",
    }
    RESET = "\033[0m"

    def __init__(self, show_name: bool = False):
        super().__init__()
        self.show_name = show_name

    def format(self, record: logging.LogRecord):
        log_color = self.COLORS.get(record.levelno, self.RESET)
        log_fmt = f"%(asctime)s | {log_color}%(levelname)8s{self.RESET} | "
        if self.show_name:
            log_fmt += "%(name)s | "
        log_fmt += "%(message)s"
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


class ColorLogHandler(logging.StreamHandler):
    def __init__(self, show_name: bool = False):
        super().__init__()
        self.setFormatter(ColorFormatter(show_name))
