"""
Stats Report - Formats ledger snapshots into log lines for summaries and shutdown
"""


def treasury_stats_lines(snapshot, burn_enabled):
    bot = snapshot["bot"]
    lines = [
        "📊 Bot Stats:",
        "   Claims: {} ({:.6f} SOL)".format(bot["claim_count"], bot["total_claimed"]),
        "   Buybacks: {} ({:.6f} SOL)".format(bot["buyback_count"], bot["total_buyback_spent"]),
        "   Tokens Bought: {:.2f}".format(bot["total_tokens_bought"]),
    ]
    if burn_enabled:
        lines.append("   Tokens Burned: {:.2f}".format(bot["total_tokens_burned"]))
    else:
        lines.append("   Tokens Held: {:.2f}".format(bot["total_tokens_bought"]))
    return lines


def final_stats_lines(snapshot, fee_claim_enabled, burn_enabled):
    """Shutdown report: gaming counters always, bot counters when the bot ran."""
    game = snapshot["game"]
    bot = snapshot["bot"]
    lines = [
        "📊 Final Stats:",
        "   Gaming:",
        "     Total Games: {}".format(game["total_games"]),
        "     Total Wagered: {:.4f}".format(game["total_wagered"]),
        "     Total Payouts: {:.4f}".format(game["total_payouts"]),
        "     Wins: {}, Losses: {}".format(game["wins"], game["losses"]),
    ]
    if fee_claim_enabled:
        lines.extend([
            "   Bot:",
            "     Total Claims: {} ({:.6f} SOL)".format(
                bot["claim_count"], bot["total_claimed"]),
            "     Total Buybacks: {} ({:.6f} SOL)".format(
                bot["buyback_count"], bot["total_buyback_spent"]),
            "     Tokens Bought: {:.2f}".format(bot["total_tokens_bought"]),
        ])
        if burn_enabled:
            lines.append("     Tokens Burned: {:.2f}".format(bot["total_tokens_burned"]))
    return lines


def log_lines(logger, lines):
    for line in lines:
        logger.info(line)
