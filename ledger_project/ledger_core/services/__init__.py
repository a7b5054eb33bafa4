from .audit_helper import audit_page, audit_trail, log_action
from .batches import discard_batch, get_batch_status, process_batch, submit_batch
from .periods import (close_period, delete_period, is_period_open, list_periods,
                      open_period, resolve_period)
from .posting import (cancel_journal_entry, create_journal_entry,
                      get_journal_entry, post_journal_entry,
                      reverse_journal_entry, update_journal_entry)
from .reconciliation import (ManualMatchResult, MatchedPair, MatchReport,
                             add_adjustment, approve_reconciliation, auto_match,
                             cancel_reconciliation, complete_reconciliation,
                             get_reconciliation, import_statement_lines,
                             manual_match, reject_reconciliation,
                             reopen_reconciliation, start_reconciliation,
                             unmatch_item)
