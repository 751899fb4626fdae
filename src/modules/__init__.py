"""
Community feature modules.

- community: authorization policy, group adapters, invitation and membership engines
- guild: guild lifecycle, join requests, posts/comments/likes
- party: party lifecycle and the shared stash
- notification: notification ledger and identity lookup
- shared: base service/repository and domain exceptions
"""
