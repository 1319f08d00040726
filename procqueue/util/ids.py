import os, socket, random, uuid

def make_worker_id(prefix: str = "worker") -> str:
    host = socket.gethostname()
    pid = os.getpid()
    rand = random.randint(1000, 9999)
    return f"{prefix}-{host}-{pid}-{rand}"


def new_job_id() -> str:
    return uuid.uuid4().hex
