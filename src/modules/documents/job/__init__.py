from .auto_expire import start_expiry_job, run_expiry

__all__ = ['start_expiry_job', 'run_expiry']
